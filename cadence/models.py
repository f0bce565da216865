"""Shared ledger data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
import uuid


class ScopeKind(str, Enum):
    """Budget scopes. Every one of them must have headroom for a charge."""
    DAILY = "daily"
    MONTHLY = "monthly"
    PER_AGENT = "per-agent"


@dataclass
class BudgetLimits:
    """Spending ceilings in USD."""
    daily_usd: float = 5.00
    monthly_usd: float = 50.00
    per_agent_usd: float = 10.00

    def for_kind(self, kind: ScopeKind) -> float:
        if kind == ScopeKind.DAILY:
            return self.daily_usd
        if kind == ScopeKind.MONTHLY:
            return self.monthly_usd
        return self.per_agent_usd

    def to_dict(self) -> dict:
        return {
            "daily": self.daily_usd,
            "monthly": self.monthly_usd,
            "perAgent": self.per_agent_usd,
        }


@dataclass
class BudgetScope:
    """Consumption against one ceiling within the current period."""
    kind: ScopeKind
    limit: float
    consumed: float = 0.0
    period_key: str = ""
    agent_id: Optional[str] = None

    @property
    def remaining(self) -> float:
        return max(0.0, self.limit - self.consumed)

    def has_headroom(self, cost: float) -> bool:
        return self.consumed + cost <= self.limit

    @property
    def percent_used(self) -> float:
        if self.limit <= 0:
            return 100.0 if self.consumed > 0 else 0.0
        return (self.consumed / self.limit) * 100


@dataclass(frozen=True)
class UsageRecord:
    """Record of a single charged selection. Never modified after creation."""
    agent_id: str
    model_id: str
    estimated_cost: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex)
