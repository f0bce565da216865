"""
Model registry for Cadence.

Static catalog of model descriptors plus per-1K-token pricing. The
catalog is open-world: ids that are not registered can still be selected.
"""

from typing import Iterable, Optional

from cadence.schemas import ModelDescriptor, Provider, Tier


# =============================================================================
# DEFAULT CATALOG
# =============================================================================

DEFAULT_MODELS: tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        id="gpt-4",
        provider=Provider.OPENAI,
        tier=Tier.PREMIUM,
        cost_class="high",
        speed_class="slow",
        strengths=("reasoning", "planning", "complex logic"),
    ),
    ModelDescriptor(
        id="gpt-4-turbo",
        provider=Provider.OPENAI,
        tier=Tier.HIGH,
        cost_class="medium",
        speed_class="medium",
        strengths=("coding", "large context", "balanced"),
    ),
    ModelDescriptor(
        id="gpt-4o",
        provider=Provider.OPENAI,
        tier=Tier.PREMIUM,
        cost_class="medium",
        speed_class="fast",
        strengths=("multimodal", "speed", "general purpose"),
    ),
    ModelDescriptor(
        id="gpt-3.5-turbo",
        provider=Provider.OPENAI,
        tier=Tier.STANDARD,
        cost_class="low",
        speed_class="fast",
        strengths=("simple tasks", "speed", "cost"),
    ),
    ModelDescriptor(
        id="o1-preview",
        provider=Provider.OPENAI,
        tier=Tier.ULTRA_PREMIUM,
        cost_class="very-high",
        speed_class="slow",
        strengths=("deep reasoning", "math", "research"),
    ),
    ModelDescriptor(
        id="o1-mini",
        provider=Provider.OPENAI,
        tier=Tier.PREMIUM,
        cost_class="medium",
        speed_class="medium",
        strengths=("reasoning", "coding"),
    ),
    ModelDescriptor(
        id="claude-3-opus",
        provider=Provider.ANTHROPIC,
        tier=Tier.PREMIUM,
        cost_class="high",
        speed_class="slow",
        strengths=("architecture", "long documents", "nuance"),
    ),
    ModelDescriptor(
        id="claude-3.5-sonnet",
        provider=Provider.ANTHROPIC,
        tier=Tier.ULTRA_PREMIUM,
        cost_class="medium",
        speed_class="fast",
        strengths=("coding", "ui work", "analysis"),
    ),
    ModelDescriptor(
        id="claude-3-sonnet",
        provider=Provider.ANTHROPIC,
        tier=Tier.HIGH,
        cost_class="medium",
        speed_class="medium",
        strengths=("coding", "balanced"),
    ),
    ModelDescriptor(
        id="claude-3-haiku",
        provider=Provider.ANTHROPIC,
        tier=Tier.STANDARD,
        cost_class="low",
        speed_class="fast",
        strengths=("writing", "speed", "cost"),
    ),
)

# USD per 1K tokens
PRICING: dict[str, dict[str, float]] = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    "o1-preview": {"input": 0.015, "output": 0.06},
    "o1-mini": {"input": 0.003, "output": 0.012},
    "claude-3-opus": {"input": 0.015, "output": 0.075},
    "claude-3.5-sonnet": {"input": 0.003, "output": 0.015},
    "claude-3-sonnet": {"input": 0.003, "output": 0.015},
    "claude-3-haiku": {"input": 0.00025, "output": 0.00125},
}

COST_CLASS_RANK: dict[str, int] = {
    "low": 0,
    "medium": 1,
    "high": 2,
    "very-high": 3,
}


class ModelRegistry:
    """
    Catalog of model descriptors keyed by id.

    The descriptor set is fixed once constructed.
    """

    def __init__(self, models: Iterable[ModelDescriptor] = None):
        self._models: dict[str, ModelDescriptor] = {}
        for descriptor in models if models is not None else DEFAULT_MODELS:
            self._models[descriptor.id] = descriptor

    def get_descriptor(self, model_id: str) -> Optional[ModelDescriptor]:
        """Get a descriptor, or None for unregistered ids."""
        return self._models.get(model_id)

    def is_model_available(self, model_id: str) -> bool:
        """
        Any model id may be selected.

        Custom, beta, or account-gated models do not need a registry
        entry. This is a predicate only; it never touches state.
        """
        return True

    def list_models(
        self,
        tier: Optional[str] = None,
        provider: Optional[str] = None,
        cost_class: Optional[str] = None,
    ) -> list[ModelDescriptor]:
        """List descriptors in registration order, optionally filtered."""
        results = []
        for descriptor in self._models.values():
            if tier is not None and descriptor.tier.value != tier:
                continue
            if provider is not None and descriptor.provider.value != provider:
                continue
            if cost_class is not None and descriptor.cost_class != cost_class:
                continue
            results.append(descriptor)
        return results

    def cheapest(
        self,
        tier: Optional[str] = None,
        exclude: Iterable[str] = (),
    ) -> Optional[ModelDescriptor]:
        """
        Cheapest descriptor by cost class.

        Ties go to the earliest registered model so the answer is stable.
        """
        excluded = set(exclude)
        candidates = [
            d for d in self.list_models(tier=tier)
            if d.id not in excluded
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda d: COST_CLASS_RANK.get(d.cost_class, 1))

    def ids(self) -> list[str]:
        return list(self._models)

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)
