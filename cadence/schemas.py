"""
Data schemas for Cadence.

Request, descriptor, and result structures shared by the estimator,
strategies, and selector.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ComplexityLevel(str, Enum):
    """Coarse task difficulty tier."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"

    @classmethod
    def parse(cls, value) -> Optional["ComplexityLevel"]:
        """Return the matching level, or None for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def tier_index(self) -> int:
        """Position in three-candidate preference lists."""
        return _TIER_INDEX[self]


_TIER_INDEX = {
    ComplexityLevel.SIMPLE: 0,
    ComplexityLevel.MODERATE: 1,
    ComplexityLevel.COMPLEX: 2,
}


class TaskType(str, Enum):
    """Kinds of work a task description can describe."""
    BUG_FIX = "bug-fix"
    REFACTOR = "refactor"
    DOCUMENTATION = "documentation"
    FEATURE = "feature"


class Tier(str, Enum):
    """Model quality tiers."""
    STANDARD = "standard"
    HIGH = "high"
    PREMIUM = "premium"
    ULTRA_PREMIUM = "ultra-premium"


class Provider(str, Enum):
    """LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Static catalog entry for a model.

    Descriptors are optional metadata: the selector accepts model ids
    that have no descriptor at all.
    """
    id: str
    provider: Provider
    tier: Tier
    cost_class: str    # low, medium, high, very-high
    speed_class: str   # fast, medium, slow
    strengths: tuple[str, ...] = ()


@dataclass
class TaskRequest:
    """
    Incoming selection request from task intake.

    Created per call; nothing holds on to it.
    """
    agent_id: Optional[str]
    task_text: str
    explicit_complexity: Optional[ComplexityLevel] = None
    phase_override: Optional[str] = None
    strategy: Optional[str] = None  # caller-selected strategy name


@dataclass
class SelectionResult:
    """The model chosen for a task, with how it was chosen."""
    model_id: str
    strategy_used: str
    fallback_applied: bool
    estimated_cost: float
    complexity: ComplexityLevel = ComplexityLevel.SIMPLE


@dataclass
class TaskAnalysis:
    """
    Planning report for a task description.

    Consumed by planning tools to decide whether work should start
    with a written spec before any ticket is opened.
    """
    complexity: ComplexityLevel
    task_type: TaskType
    features: list[str] = field(default_factory=list)
    spec_first_recommended: bool = False
    estimated_effort: str = "<1 day"
    score: int = 0

    def to_dict(self) -> dict:
        return {
            "complexity": self.complexity.value,
            "task_type": self.task_type.value,
            "features": list(self.features),
            "spec_first_recommended": self.spec_first_recommended,
            "estimated_effort": self.estimated_effort,
            "score": self.score,
        }
