"""
Basic usage examples for Cadence.

Walks through classification, selection, budgets, and custom strategies.
"""

from cadence import (
    BudgetLedger,
    BudgetLimits,
    ComplexityEstimator,
    ModelSelector,
    ScopeKind,
    SelectionStrategy,
)


def example_basic():
    """Select a model for an agent task."""
    print("=" * 60)
    print("Example 1: Basic Selection")
    print("=" * 60)

    selector = ModelSelector()

    result = selector.select_model("frontend", "Create login component", "moderate")

    print(f"Model: {result.model_id}")
    print(f"Strategy: {result.strategy_used}")
    print(f"Estimated cost: ${result.estimated_cost:.4f}")
    print(f"Fallback applied: {result.fallback_applied}")
    print()


def example_planning():
    """Decide whether a task needs a spec first."""
    print("=" * 60)
    print("Example 2: Planning Analysis")
    print("=" * 60)

    estimator = ComplexityEstimator()
    analysis = estimator.analyze(
        "build a fulfilment order management app with dashboard, "
        "orders page, and warehouse management"
    )

    print(f"Complexity: {analysis.complexity.value}")
    print(f"Task type: {analysis.task_type.value}")
    print(f"Features: {analysis.features}")
    print(f"Effort: {analysis.estimated_effort}")
    print()
    print(estimator.get_recommendation(analysis))
    print()


def example_budget_fallback():
    """Tight budgets push selection onto the agent's cheap path."""
    print("=" * 60)
    print("Example 3: Budget Fallback")
    print("=" * 60)

    # Room for roughly one premium task per day
    ledger = BudgetLedger(limits=BudgetLimits(daily_usd=0.08))
    selector = ModelSelector(ledger=ledger)

    for i in range(3):
        result = selector.select_model("backend", "Design the payment service", "complex")
        print(f"Task {i + 1}: {result.model_id} (fallback={result.fallback_applied})")

    print(f"Daily remaining: ${ledger.remaining(ScopeKind.DAILY):.4f}")
    print()


def example_custom_strategy():
    """Register a strategy and select it per request."""
    print("=" * 60)
    print("Example 4: Custom Strategy")
    print("=" * 60)

    class AnthropicOnly(SelectionStrategy):
        def select(self, agent_id, complexity, context):
            return ("claude-3-haiku", "claude-3-sonnet", "claude-3-opus")[complexity.tier_index]

        def get_name(self):
            return "anthropic-only"

        def get_description(self):
            return "Claude models only"

    selector = ModelSelector()
    selector.register_strategy("anthropic-only", AnthropicOnly())

    result = selector.select_model(
        "devops", "Set up CI pipeline", "moderate", strategy="anthropic-only"
    )
    print(f"Model: {result.model_id} via {result.strategy_used}")
    print()


def example_phases():
    """Deployment phase changes the picks for unknown agents."""
    print("=" * 60)
    print("Example 5: Deployment Phases")
    print("=" * 60)

    selector = ModelSelector()

    for phase in ("development", "staging", "production"):
        result = selector.select_model(
            "data-pipeline", "Add retry to ingestion job", "complex", phase_override=phase
        )
        print(f"{phase:<12} -> {result.model_id}")
    print()


if __name__ == "__main__":
    example_basic()
    example_planning()
    example_budget_fallback()
    example_custom_strategy()
    example_phases()
