"""
Selection strategies for Cadence.

Each strategy maps (agent, complexity, context) to a model id, or to
None when it has no opinion and the next strategy should decide.
Strategies are stateless and read only their own preference tables.
"""

import os
from abc import ABC, abstractmethod
from typing import Optional

from cadence.schemas import ComplexityLevel


PHASE_ENV_VAR = "CADENCE_PHASE"
ENVIRONMENT_ENV_VAR = "APP_ENV"

ENVIRONMENT_TO_PHASE = {
    "test": "development",
    "testing": "development",
    "dev": "development",
    "development": "development",
    "staging": "staging",
    "prod": "production",
    "production": "production",
}

DEFAULT_PHASE = "development"


def _tier_index(complexity) -> int:
    """Index into a three-candidate list; unknown values use the moderate slot."""
    level = ComplexityLevel.parse(complexity)
    if level is None:
        return ComplexityLevel.MODERATE.tier_index
    return level.tier_index


class SelectionStrategy(ABC):
    """Base class for model selection strategies."""

    @abstractmethod
    def select(self, agent_id: Optional[str], complexity, context: dict) -> Optional[str]:
        """Return a model id, or None to defer to the next strategy."""

    @abstractmethod
    def get_name(self) -> str:
        pass

    @abstractmethod
    def get_description(self) -> str:
        pass


# =============================================================================
# COMPLEXITY-BASED
# =============================================================================

class ComplexityBasedStrategy(SelectionStrategy):
    """Agent-agnostic three-tier lookup."""

    TIER_MODELS: dict[str, tuple[str, str, str]] = {
        "openai": ("gpt-3.5-turbo", "gpt-4-turbo", "gpt-4"),
        "anthropic": ("claude-3-haiku", "claude-3-sonnet", "claude-3-opus"),
    }

    def select(self, agent_id, complexity, context=None) -> Optional[str]:
        context = context or {}
        provider = context.get("preferred_provider")
        models = self.TIER_MODELS.get(provider, self.TIER_MODELS["openai"])
        return models[_tier_index(complexity)]

    def get_name(self) -> str:
        return "complexity-based"

    def get_description(self) -> str:
        return "Selects standard, high, or premium tier models by task complexity"


# =============================================================================
# AGENT-SPECIFIC
# =============================================================================

AGENT_PREFERENCES: dict[str, dict] = {
    "orchestrator": {
        "primary": ["gpt-3.5-turbo", "gpt-4-turbo", "gpt-4"],
        "fallback": ["gpt-3.5-turbo", "claude-3-haiku"],
        "reasoning": "Coordination and planning need strong reasoning on hard tasks",
    },
    "frontend": {
        "primary": ["claude-3-haiku", "claude-3-sonnet", "claude-3-opus"],
        "fallback": ["claude-3-haiku", "gpt-3.5-turbo"],
        "reasoning": "Claude models handle UI components and styling well",
    },
    "backend": {
        "primary": ["claude-3-sonnet", "gpt-4", "claude-3-opus"],
        "fallback": ["gpt-3.5-turbo", "claude-3-haiku"],
        "reasoning": "APIs and data models benefit from careful reasoning",
    },
    "devops": {
        "primary": ["gpt-3.5-turbo", "gpt-4-turbo", "gpt-4"],
        "fallback": ["gpt-3.5-turbo"],
        "reasoning": "Infrastructure scripts are mostly routine, pipelines less so",
    },
    "testing": {
        "primary": ["gpt-3.5-turbo", "claude-3-sonnet", "gpt-4-turbo"],
        "fallback": ["gpt-3.5-turbo", "claude-3-haiku"],
        "reasoning": "Test generation is repetitive; cost-efficient models suffice",
    },
    "documentation": {
        "primary": ["claude-3-haiku", "claude-3-sonnet", "claude-3.5-sonnet"],
        "fallback": ["claude-3-haiku", "gpt-3.5-turbo"],
        "reasoning": "Writing quality matters more than deep reasoning",
    },
}


class AgentSpecificStrategy(SelectionStrategy):
    """Per-agent preference tables."""

    def __init__(self, preferences: dict[str, dict] = None):
        self.preferences = preferences if preferences is not None else AGENT_PREFERENCES

    def select(self, agent_id, complexity, context=None) -> Optional[str]:
        prefs = self.preferences.get(agent_id) if isinstance(agent_id, str) else None
        if prefs is None:
            return None
        return prefs["primary"][_tier_index(complexity)]

    def get_agent_preferences(self, agent_id: str) -> Optional[dict]:
        return self.preferences.get(agent_id)

    def get_fallback(self, agent_id: Optional[str]) -> list[str]:
        """Cheap-path models for an agent, empty for unknown agents."""
        prefs = self.preferences.get(agent_id) if isinstance(agent_id, str) else None
        if prefs is None:
            return []
        return list(prefs["fallback"])

    def list_agents(self) -> list[dict]:
        return [{"agent": agent, **prefs} for agent, prefs in self.preferences.items()]

    def get_name(self) -> str:
        return "agent-specific"

    def get_description(self) -> str:
        return "Selects models from each agent's preferred list by complexity"


# =============================================================================
# PHASE-BASED
# =============================================================================

PHASE_PREFERENCES: dict[str, dict] = {
    "development": {
        "priority": "cost-efficient",
        "models": ["gpt-3.5-turbo", "claude-3-haiku", "claude-3-sonnet"],
        "max_cost_per_task": 0.10,
        "reasoning": "Rapid iteration, cost-effective models preferred",
    },
    "staging": {
        "priority": "balanced",
        "models": ["gpt-3.5-turbo", "claude-3-sonnet", "gpt-4-turbo"],
        "max_cost_per_task": 0.50,
        "reasoning": "Pre-production validation with higher quality models",
    },
    "production": {
        "priority": "performance",
        "models": ["claude-3-sonnet", "gpt-4-turbo", "gpt-4"],
        "max_cost_per_task": 1.00,
        "reasoning": "Production-grade responses, reliability over cost",
    },
}


class PhaseBasedStrategy(SelectionStrategy):
    """
    Selects models by deployment phase.

    Phase resolution order:
    1. phase_override in the selection context
    2. CADENCE_PHASE environment variable
    3. APP_ENV mapped onto a phase (test/dev, staging, prod)
    4. development

    max_cost_per_task is informational; the budget ledger enforces spend.
    """

    def __init__(self, preferences: dict[str, dict] = None, environ=None):
        self.preferences = preferences if preferences is not None else PHASE_PREFERENCES
        self._environ = environ

    def detect_phase(self, phase_override: Optional[str] = None) -> str:
        env = self._environ if self._environ is not None else os.environ

        if phase_override:
            return phase_override.strip().lower()

        explicit = env.get(PHASE_ENV_VAR)
        if explicit:
            return explicit.strip().lower()

        kind = env.get(ENVIRONMENT_ENV_VAR)
        if kind:
            mapped = ENVIRONMENT_TO_PHASE.get(kind.strip().lower())
            if mapped:
                return mapped

        return DEFAULT_PHASE

    def select(self, agent_id, complexity, context=None) -> Optional[str]:
        context = context or {}
        phase = self.detect_phase(context.get("phase_override"))
        prefs = self.preferences.get(phase) or self.preferences[DEFAULT_PHASE]
        return prefs["models"][_tier_index(complexity)]

    def get_current_phase_info(self, phase_override: Optional[str] = None) -> dict:
        phase = self.detect_phase(phase_override)
        prefs = self.preferences.get(phase) or self.preferences[DEFAULT_PHASE]
        return {"phase": phase, **prefs}

    def get_phase_preferences(self, phase: str) -> Optional[dict]:
        return self.preferences.get(phase)

    def is_within_phase_budget(self, estimated_cost: float, phase: Optional[str] = None) -> bool:
        prefs = self.preferences.get(self.detect_phase(phase)) or self.preferences[DEFAULT_PHASE]
        return estimated_cost <= prefs["max_cost_per_task"]

    def list_phases(self) -> list[dict]:
        return [{"phase": phase, **prefs} for phase, prefs in self.preferences.items()]

    def get_name(self) -> str:
        return "phase-based"

    def get_description(self) -> str:
        return "Selects models based on deployment phase (development, staging, production)"


# =============================================================================
# REGISTRY
# =============================================================================

class StrategyRegistry:
    """Name-keyed strategy map. Built-ins are registered on construction."""

    def __init__(self, environ=None):
        self._strategies: dict[str, SelectionStrategy] = {}
        for strategy in (
            ComplexityBasedStrategy(),
            AgentSpecificStrategy(),
            PhaseBasedStrategy(environ=environ),
        ):
            self._strategies[strategy.get_name()] = strategy

    def register(self, name: str, strategy: SelectionStrategy) -> None:
        """Register a custom strategy, replacing any existing one of that name."""
        if not name:
            raise ValueError("strategy name must be a non-empty string")
        if not callable(getattr(strategy, "select", None)):
            raise ValueError(f"strategy '{name}' must define select()")
        self._strategies[name] = strategy

    def get(self, name: str) -> Optional[SelectionStrategy]:
        return self._strategies.get(name)

    def names(self) -> list[str]:
        return list(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)
