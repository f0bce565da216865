"""
Model selector for Cadence.

Resolves complexity, walks the strategy precedence chain, and checks the
budget ledger before committing to a model.
"""

from typing import Any, Mapping, Optional, Union
import logging

from cadence.classifier import ComplexityEstimator
from cadence.config import SelectorConfig, load_config
from cadence.cost_control import BudgetLedger, GENERIC_AGENT
from cadence.metrics import MetricsCollector
from cadence.registry import ModelRegistry
from cadence.schemas import (
    ComplexityLevel,
    ModelDescriptor,
    SelectionResult,
    TaskRequest,
)
from cadence.strategies import SelectionStrategy, StrategyRegistry


logger = logging.getLogger("cadence.selector")

# Built-in strategies, highest precedence first.
BUILTIN_PRECEDENCE = ("agent-specific", "phase-based", "complexity-based")

ULTIMATE_FALLBACK_STRATEGY = "ultimate-fallback"
ULTIMATE_FALLBACK_MODEL = "gpt-3.5-turbo"
DEFAULTS_STRATEGY = "defaults"


# Ledger-free defaults, indexed simple/moderate/complex.
QUALITY_DEFAULTS: dict[str, tuple[str, str, str]] = {
    "orchestrator": ("gpt-4-turbo", "claude-3.5-sonnet", "gpt-4"),
    "frontend": ("claude-3-haiku", "claude-3.5-sonnet", "claude-3-opus"),
    "backend": ("claude-3-sonnet", "claude-3.5-sonnet", "claude-3-opus"),
    "devops": ("gpt-4o", "gpt-4-turbo", "gpt-4"),
    "testing": ("gpt-4o", "claude-3.5-sonnet", "gpt-4-turbo"),
    "documentation": ("claude-3-haiku", "claude-3.5-sonnet", "claude-3-opus"),
    "default": ("gpt-4o", "claude-3.5-sonnet", "gpt-4"),
}

COST_DEFAULTS: dict[str, tuple[str, str, str]] = {
    "orchestrator": ("gpt-3.5-turbo", "claude-3-haiku", "gpt-4-turbo"),
    "frontend": ("claude-3-haiku", "claude-3-sonnet", "claude-3.5-sonnet"),
    "backend": ("gpt-3.5-turbo", "claude-3-sonnet", "gpt-4-turbo"),
    "devops": ("gpt-3.5-turbo", "gpt-3.5-turbo", "gpt-4o"),
    "testing": ("gpt-3.5-turbo", "claude-3-haiku", "claude-3-sonnet"),
    "documentation": ("claude-3-haiku", "claude-3-haiku", "claude-3-sonnet"),
    "default": ("gpt-3.5-turbo", "claude-3-haiku", "gpt-4o"),
}


class ModelSelector:
    """
    Picks a model for each task.

    Precedence:
    1. The caller-selected strategy, if it is registered
    2. agent-specific
    3. phase-based
    4. complexity-based
    5. The cheapest enabled standard-tier model

    The first strategy returning an enabled model id wins. The candidate
    is then checked against the budget ledger; if any scope lacks room,
    the agent's cheap fallback is returned instead and nothing is charged.

    Every collaborator can be injected; anything omitted is constructed
    fresh, so two selectors never share state by accident.

    Example:
        ```python
        selector = ModelSelector({"upgrade-defaults": False, "dailyLimit": 2.0})
        result = selector.select_model("frontend", "Create login component")
        print(result.model_id, result.strategy_used, result.fallback_applied)
        ```
    """

    def __init__(
        self,
        config: Union[SelectorConfig, Mapping[str, Any], None] = None,
        registry: Optional[ModelRegistry] = None,
        estimator: Optional[ComplexityEstimator] = None,
        strategies: Optional[StrategyRegistry] = None,
        ledger: Optional[BudgetLedger] = None,
        metrics: Optional[MetricsCollector] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        if isinstance(config, SelectorConfig):
            self.config = config
        else:
            self.config = SelectorConfig.from_mapping(config)

        self.registry = registry if registry is not None else ModelRegistry()
        self.estimator = estimator if estimator is not None else ComplexityEstimator()
        self.strategies = strategies if strategies is not None else StrategyRegistry(environ=environ)
        self.metrics = metrics if metrics is not None else MetricsCollector(enable_logging=False)
        self.ledger = ledger if ledger is not None else BudgetLedger(
            limits=self.config.budgets,
            registry=self.registry,
            metrics=self.metrics,
        )

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, request: TaskRequest) -> SelectionResult:
        """Select a model for an intake request."""
        return self.select_model(
            request.agent_id,
            request.task_text,
            request.explicit_complexity,
            phase_override=request.phase_override,
            strategy=request.strategy,
        )

    def select_model(
        self,
        agent_id: Optional[str],
        task_text: Optional[str],
        explicit_complexity=None,
        *,
        phase_override: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> SelectionResult:
        """
        Select a model for a task and charge it to the ledger.

        Args:
            agent_id: Agent role; None or empty means a generic agent.
            task_text: Free-text task description.
            explicit_complexity: Skips estimation when it parses as a level.
            phase_override: Deployment phase, ahead of the environment.
            strategy: Name of a registered strategy to consult first.

        Returns:
            SelectionResult. Always carries a model id.
        """
        agent = agent_id or GENERIC_AGENT
        text = task_text or ""

        # =======================================================================
        # STEP 1: Resolve complexity
        # =======================================================================
        complexity = ComplexityLevel.parse(explicit_complexity)
        if complexity is None:
            complexity = self.estimator.estimate_complexity(text)

        if not self.config.enabled:
            model_id = self.select_default_model(agent_id, complexity)
            return self._result(
                agent, model_id, DEFAULTS_STRATEGY, False,
                self.ledger.estimate_cost(model_id, text), complexity,
            )

        # =======================================================================
        # STEP 2: Walk the precedence chain
        # =======================================================================
        context = {"phase_override": phase_override, "task_text": text}
        candidate, strategy_used = self._run_chain(agent_id, complexity, context, strategy)

        # =======================================================================
        # STEP 3: Check the budget and commit
        # =======================================================================
        estimated_cost = self.ledger.estimate_cost(candidate, text)
        with self.ledger.locked():
            affordable = self.ledger.can_afford(agent, text, model_id=candidate)
            if affordable:
                self.ledger.record_usage(agent, candidate, estimated_cost)

        if affordable:
            return self._result(agent, candidate, strategy_used, False, estimated_cost, complexity)

        fallback = self.select_fallback(agent_id)
        self.metrics.record_fallback(
            agent_id=agent,
            candidate_model=candidate,
            fallback_model=fallback,
            estimated_cost=estimated_cost,
        )
        return self._result(
            agent, fallback, strategy_used, True,
            self.ledger.estimate_cost(fallback, text), complexity,
        )

    def preview_model(
        self,
        agent_id: Optional[str],
        task_text: Optional[str],
        explicit_complexity=None,
        *,
        phase_override: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> SelectionResult:
        """Same decision as select_model, but nothing is charged or recorded."""
        agent = agent_id or GENERIC_AGENT
        text = task_text or ""
        complexity = ComplexityLevel.parse(explicit_complexity)
        if complexity is None:
            complexity = self.estimator.estimate_complexity(text)

        if not self.config.enabled:
            model_id = self.select_default_model(agent_id, complexity)
            return SelectionResult(
                model_id, DEFAULTS_STRATEGY, False,
                self.ledger.estimate_cost(model_id, text), complexity,
            )

        context = {"phase_override": phase_override, "task_text": text}
        candidate, strategy_used = self._run_chain(agent_id, complexity, context, strategy)
        if self.ledger.can_afford(agent, text, model_id=candidate):
            return SelectionResult(
                candidate, strategy_used, False,
                self.ledger.estimate_cost(candidate, text), complexity,
            )

        fallback = self.select_fallback(agent_id)
        return SelectionResult(
            fallback, strategy_used, True,
            self.ledger.estimate_cost(fallback, text), complexity,
        )

    def select_fallback(self, agent_id: Optional[str]) -> str:
        """
        Cheap-path model for an agent.

        The first enabled entry of the agent's fallback table, or the
        ultimate fallback for unknown agents. Not budget-checked.
        """
        agent_strategy = self.strategies.get("agent-specific")
        candidates = []
        if agent_strategy is not None and hasattr(agent_strategy, "get_fallback"):
            candidates = agent_strategy.get_fallback(agent_id)

        for model_id in candidates:
            if self.config.is_model_enabled(model_id):
                return model_id
        return self._ultimate_fallback()

    def select_default_model(self, agent_id: Optional[str], complexity) -> str:
        """
        Static default for an agent and complexity, without the ledger.

        Uses the quality table when upgrade-defaults is set and the cost
        table otherwise. Unparseable complexity is treated as moderate.
        """
        table = QUALITY_DEFAULTS if self.config.upgrade_defaults else COST_DEFAULTS
        row = table.get(agent_id) if isinstance(agent_id, str) else None
        if row is None:
            row = table["default"]

        level = ComplexityLevel.parse(complexity) or ComplexityLevel.MODERATE
        return row[level.tier_index]

    def _run_chain(self, agent_id, complexity, context, requested) -> tuple[str, str]:
        names = []
        if requested:
            if requested in self.strategies:
                names.append(requested)
            else:
                logger.warning(f"Unknown strategy '{requested}' requested, ignoring")
        names.extend(name for name in BUILTIN_PRECEDENCE if name not in names)

        for name in names:
            strategy = self.strategies.get(name)
            if strategy is None:
                continue
            model_id = strategy.select(agent_id, complexity, context)
            if not model_id:
                continue
            if not self.config.is_model_enabled(model_id):
                logger.debug(f"Strategy '{name}' chose disabled model {model_id}, deferring")
                continue
            return model_id, name

        return self._ultimate_fallback(), ULTIMATE_FALLBACK_STRATEGY

    def _ultimate_fallback(self) -> str:
        descriptor = self.registry.cheapest(tier="standard", exclude=self.config.disabled_models)
        if descriptor is None:
            return ULTIMATE_FALLBACK_MODEL
        return descriptor.id

    def _result(
        self,
        agent_id: str,
        model_id: str,
        strategy_used: str,
        fallback_applied: bool,
        estimated_cost: float,
        complexity: ComplexityLevel,
    ) -> SelectionResult:
        self.metrics.record_selection(
            agent_id=agent_id,
            model_id=model_id,
            strategy_used=strategy_used,
            complexity=complexity.value,
            estimated_cost=estimated_cost,
            fallback_applied=fallback_applied,
        )
        return SelectionResult(
            model_id=model_id,
            strategy_used=strategy_used,
            fallback_applied=fallback_applied,
            estimated_cost=estimated_cost,
            complexity=complexity,
        )

    # =========================================================================
    # Extension and inspection
    # =========================================================================

    def register_strategy(self, name: str, strategy: SelectionStrategy) -> None:
        """Register a custom strategy, selectable by name per request."""
        self.strategies.register(name, strategy)

    def is_model_available(self, model_id: str) -> bool:
        return self.registry.is_model_available(model_id)

    def get_model_info(self, model_id: str) -> Optional[ModelDescriptor]:
        return self.registry.get_descriptor(model_id)

    def list_models(
        self,
        tier: Optional[str] = None,
        provider: Optional[str] = None,
        cost_class: Optional[str] = None,
    ) -> list[dict]:
        """Registered models with an enabled flag from configuration."""
        return [
            {
                "id": d.id,
                "provider": d.provider.value,
                "tier": d.tier.value,
                "cost_class": d.cost_class,
                "speed_class": d.speed_class,
                "strengths": list(d.strengths),
                "enabled": self.config.is_model_enabled(d.id),
            }
            for d in self.registry.list_models(tier=tier, provider=provider, cost_class=cost_class)
        ]

    def get_usage_stats(self) -> dict:
        return self.ledger.get_usage_stats()

    def reset_usage(self) -> None:
        self.ledger.reset_usage()


def selector_from_env(path=None) -> ModelSelector:
    """Build a selector from the rc file and CADENCE_CONFIG_JSON."""
    return ModelSelector(load_config(path))
