"""
Cadence - Pick the right model for every agent task.

Selection:
    from cadence import ModelSelector

    selector = ModelSelector({"upgrade-defaults": False})
    result = selector.select_model("frontend", "Create login component")
    print(result.model_id)          # "claude-3-haiku"
    print(result.strategy_used)     # "agent-specific"
    print(result.fallback_applied)  # False

Planning (spec-first or not):
    from cadence import ComplexityEstimator

    analysis = ComplexityEstimator().analyze(
        "build an order management app with dashboard, orders page, and reports"
    )
    print(analysis.complexity)              # ComplexityLevel.COMPLEX
    print(analysis.spec_first_recommended)  # True

Budgets (daily, monthly, per-agent):
    from cadence import BudgetLedger, SQLiteStorage

    ledger = BudgetLedger(storage=SQLiteStorage("usage.db"))
    ledger.update_budget("daily", 2.00)
"""

from cadence.schemas import (
    ComplexityLevel,
    TaskType,
    Tier,
    Provider,
    ModelDescriptor,
    TaskRequest,
    SelectionResult,
    TaskAnalysis,
)
from cadence.models import ScopeKind, BudgetLimits, BudgetScope, UsageRecord
from cadence.registry import ModelRegistry, DEFAULT_MODELS, PRICING
from cadence.classifier import ComplexityEstimator
from cadence.strategies import (
    SelectionStrategy,
    ComplexityBasedStrategy,
    AgentSpecificStrategy,
    PhaseBasedStrategy,
    StrategyRegistry,
)
from cadence.cost_control import BudgetLedger
from cadence.storage import InMemoryStorage, SQLiteStorage, JSONLStorage
from cadence.metrics import MetricsCollector
from cadence.config import SelectorConfig, ConfigError, load_config, validate_config
from cadence.selector import ModelSelector, selector_from_env


__version__ = "0.1.0"
