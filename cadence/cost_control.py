"""
Budget ledger for Cadence.

Tracks estimated spend in three scopes (daily, monthly, per-agent) and
answers whether a task can be afforded before it is charged.

Features:
- Coarse cost estimates from model pricing or cost class
- Lazy period rollover (no timers)
- Pluggable storage, hydrated on demand
- Fail-open on storage errors, reported to metrics
"""

from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, UTC
from typing import Callable, Iterator, Optional
from collections import defaultdict
import logging
import threading

from cadence.metrics import MetricsCollector
from cadence.models import BudgetLimits, BudgetScope, ScopeKind, UsageRecord
from cadence.registry import ModelRegistry, PRICING
from cadence.storage import InMemoryStorage, StorageBackend


logger = logging.getLogger("cadence.cost_control")

GENERIC_AGENT = "general"

# Instructions and context sent with every task, in tokens.
TASK_OVERHEAD_TOKENS = 1000
BASE_OUTPUT_TOKENS = 500

# Blended USD per 1K tokens for models without a pricing entry.
COST_CLASS_RATES: dict[str, float] = {
    "low": 0.001,
    "medium": 0.01,
    "high": 0.05,
    "very-high": 0.08,
}

_BUDGET_KIND_ALIASES = {
    "daily": ScopeKind.DAILY,
    "monthly": ScopeKind.MONTHLY,
    "per-agent": ScopeKind.PER_AGENT,
    "perAgent": ScopeKind.PER_AGENT,
    "per_agent": ScopeKind.PER_AGENT,
}


def _day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")


def _month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class BudgetLedger:
    """
    Spend tracker with daily, monthly, and per-agent ceilings.

    ``consumed`` for every scope is derived from usage records; when the
    day or month changes the affected scopes are recomputed from the
    records of the new period on the next read or write.

    Example:
        ```python
        ledger = BudgetLedger(limits=BudgetLimits(daily_usd=2.0))

        if ledger.can_afford("frontend", "Create login form", model_id="gpt-4"):
            cost = ledger.estimate_cost("gpt-4", "Create login form")
            ledger.record_usage("frontend", "gpt-4", cost)

        print(ledger.remaining(ScopeKind.PER_AGENT, "frontend"))
        ```
    """

    def __init__(
        self,
        limits: Optional[BudgetLimits] = None,
        storage: Optional[StorageBackend] = None,
        registry: Optional[ModelRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._storage = storage if storage is not None else InMemoryStorage()
        self._registry = registry if registry is not None else ModelRegistry()
        self._metrics = metrics
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()

        self._explicit_limits = limits is not None
        self.limits = replace(limits) if limits is not None else BudgetLimits()

        self._records: list[UsageRecord] = []
        self._hydrated_month: Optional[str] = None
        self._day: Optional[str] = None
        self._daily = BudgetScope(ScopeKind.DAILY, self.limits.daily_usd)
        self._monthly = BudgetScope(ScopeKind.MONTHLY, self.limits.monthly_usd)
        self._per_agent: dict[str, BudgetScope] = {}

    @property
    def metrics(self) -> Optional[MetricsCollector]:
        return self._metrics

    # =========================================================================
    # Cost estimation
    # =========================================================================

    def calculate_cost(self, model_id: str, input_tokens: int, output_tokens: int = 0) -> float:
        """
        Price a token count with the per-1K pricing table.

        Unregistered models cost 0.0 here; use estimate_cost for a
        heuristic that covers them.
        """
        rates = PRICING.get(model_id)
        if rates is None:
            return 0.0
        return (input_tokens * rates["input"] + output_tokens * rates["output"]) / 1000

    def estimate_cost(self, model_id: Optional[str], task_text: Optional[str]) -> float:
        """
        Coarse cost of running one task on a model.

        Size comes from the task text (~4 chars per token) plus a fixed
        per-task overhead. Models without pricing are charged by cost
        class, and unknown ids at the medium rate.
        """
        text_tokens = len(task_text or "") // 4
        input_tokens = TASK_OVERHEAD_TOKENS + text_tokens
        output_tokens = BASE_OUTPUT_TOKENS + text_tokens

        if model_id in PRICING:
            return self.calculate_cost(model_id, input_tokens, output_tokens)

        descriptor = self._registry.get_descriptor(model_id) if model_id else None
        cost_class = descriptor.cost_class if descriptor else "medium"
        rate = COST_CLASS_RATES.get(cost_class, COST_CLASS_RATES["medium"])
        return (input_tokens + output_tokens) * rate / 1000

    # =========================================================================
    # Budget checks and recording
    # =========================================================================

    @contextmanager
    def locked(self) -> Iterator["BudgetLedger"]:
        """Hold the ledger lock across a check-then-record sequence."""
        with self._lock:
            yield self

    def can_afford(
        self,
        agent_id: Optional[str],
        task_text: Optional[str],
        model_id: Optional[str] = None,
    ) -> bool:
        """
        Check whether a task fits in every budget scope.

        Args:
            agent_id: Agent that would be charged.
            task_text: Task description, used to size the estimate.
            model_id: Candidate model; None prices at the medium rate.

        Returns:
            True only if daily, monthly, and per-agent scopes all have
            room for the estimated cost.
        """
        agent = agent_id or GENERIC_AGENT
        cost = self.estimate_cost(model_id, task_text)

        with self._lock:
            self._refresh()
            scopes = (self._daily, self._monthly, self._agent_scope(agent))
            return all(scope.has_headroom(cost) for scope in scopes)

    def record_usage(self, agent_id: Optional[str], model_id: str, cost: float) -> UsageRecord:
        """
        Append a usage record and charge all three scopes.

        A storage failure is logged and reported; the in-memory charge
        still stands.
        """
        agent = agent_id or GENERIC_AGENT
        with self._lock:
            self._refresh()
            record = UsageRecord(
                agent_id=agent,
                model_id=model_id,
                estimated_cost=cost,
                timestamp=self._clock(),
            )
            self._records.append(record)
            self._daily.consumed += cost
            self._monthly.consumed += cost
            self._agent_scope(agent).consumed += cost

            try:
                self._storage.add_record(record)
            except Exception as exc:
                self._report_storage_error(agent, "ledger_write_failed", exc)

        return record

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_scope(self, kind: ScopeKind, agent_id: Optional[str] = None) -> BudgetScope:
        """Snapshot of a scope. Per-agent scopes need an agent id."""
        kind = self._parse_kind(kind)
        with self._lock:
            self._refresh()
            if kind == ScopeKind.DAILY:
                return replace(self._daily)
            if kind == ScopeKind.MONTHLY:
                return replace(self._monthly)
            return replace(self._agent_scope(agent_id or GENERIC_AGENT))

    def remaining(self, kind: ScopeKind, agent_id: Optional[str] = None) -> float:
        """Headroom left in a scope, never negative."""
        return self.get_scope(kind, agent_id).remaining

    def get_agent_usage(self, agent_id: str) -> float:
        """Spend charged to an agent this month."""
        with self._lock:
            self._refresh()
            scope = self._per_agent.get(agent_id)
            return scope.consumed if scope else 0.0

    def get_usage_stats(self) -> dict:
        """
        Usage summary for status displays.

        Returns:
            Dict with "daily", "monthly", and "per_agent" sections, each
            carrying cost, request count, budget, and percent used.
        """
        with self._lock:
            self._refresh()
            today = [r for r in self._records if _day_key(r.timestamp) == self._day]

            daily_by_agent: dict[str, float] = defaultdict(float)
            for r in today:
                daily_by_agent[r.agent_id] += r.estimated_cost

            monthly_by_agent: dict[str, float] = defaultdict(float)
            monthly_by_model: dict[str, float] = defaultdict(float)
            for r in self._records:
                monthly_by_agent[r.agent_id] += r.estimated_cost
                monthly_by_model[r.model_id] += r.estimated_cost

            return {
                "limits": self.limits.to_dict(),
                "daily": {
                    "period": self._daily.period_key,
                    "cost": self._daily.consumed,
                    "requests": len(today),
                    "budget": self._daily.limit,
                    "remaining": self._daily.remaining,
                    "percent_used": self._daily.percent_used,
                    "by_agent": dict(daily_by_agent),
                },
                "monthly": {
                    "period": self._monthly.period_key,
                    "cost": self._monthly.consumed,
                    "requests": len(self._records),
                    "budget": self._monthly.limit,
                    "remaining": self._monthly.remaining,
                    "percent_used": self._monthly.percent_used,
                    "by_agent": dict(monthly_by_agent),
                    "by_model": dict(monthly_by_model),
                },
                "per_agent": {
                    agent: {
                        "cost": scope.consumed,
                        "budget": scope.limit,
                        "remaining": scope.remaining,
                        "percent_used": scope.percent_used,
                    }
                    for agent, scope in sorted(self._per_agent.items())
                },
            }

    def export_records(self) -> list[dict]:
        """Current-month usage records as plain dicts."""
        with self._lock:
            self._refresh()
            return [
                {
                    "agent_id": r.agent_id,
                    "model_id": r.model_id,
                    "estimated_cost": r.estimated_cost,
                    "timestamp": r.timestamp.isoformat(),
                    "record_id": r.record_id,
                }
                for r in self._records
            ]

    # =========================================================================
    # Administration
    # =========================================================================

    def update_budget(self, kind, amount: float) -> BudgetLimits:
        """
        Change one ceiling and persist the new limits.

        Raises:
            ValueError: For an unknown scope kind or a negative amount.
        """
        scope_kind = self._parse_kind(kind)
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ValueError(f"Budget amount must be a number, got {amount!r}")
        if amount < 0:
            raise ValueError("Budget amount cannot be negative")

        with self._lock:
            if scope_kind == ScopeKind.DAILY:
                self.limits.daily_usd = float(amount)
            elif scope_kind == ScopeKind.MONTHLY:
                self.limits.monthly_usd = float(amount)
            else:
                self.limits.per_agent_usd = float(amount)

            self._daily.limit = self.limits.for_kind(ScopeKind.DAILY)
            self._monthly.limit = self.limits.for_kind(ScopeKind.MONTHLY)
            for scope in self._per_agent.values():
                scope.limit = self.limits.for_kind(ScopeKind.PER_AGENT)

            try:
                self._storage.set_limits(replace(self.limits))
            except Exception as exc:
                self._report_storage_error(GENERIC_AGENT, "ledger_limits_write_failed", exc)

            return replace(self.limits)

    def reset_usage(self) -> None:
        """Drop all usage records and zero every scope."""
        with self._lock:
            try:
                self._storage.clear_records()
            except Exception as exc:
                self._report_storage_error(GENERIC_AGENT, "ledger_clear_failed", exc)
            self._records.clear()
            self._per_agent.clear()
            self._hydrated_month = None
            self._day = None

    # =========================================================================
    # Internals
    # =========================================================================

    def _parse_kind(self, kind) -> ScopeKind:
        if isinstance(kind, ScopeKind):
            return kind
        scope_kind = _BUDGET_KIND_ALIASES.get(kind) if isinstance(kind, str) else None
        if scope_kind is None:
            raise ValueError(f"Unknown budget type: {kind!r}")
        return scope_kind

    def _agent_scope(self, agent_id: str) -> BudgetScope:
        scope = self._per_agent.get(agent_id)
        if scope is None:
            scope = BudgetScope(
                ScopeKind.PER_AGENT,
                self.limits.for_kind(ScopeKind.PER_AGENT),
                period_key=self._monthly.period_key,
                agent_id=agent_id,
            )
            self._per_agent[agent_id] = scope
        return scope

    def _refresh(self) -> None:
        """Roll periods forward if the clock has crossed a day or month boundary."""
        now = self._clock()
        month = _month_key(now)
        day = _day_key(now)

        if month != self._hydrated_month:
            # A failed read is retried on the next call.
            if self._hydrate(now):
                self._hydrated_month = month
            self._day = None

        if day != self._day:
            self._day = day
            self._recompute(day, month)

    def _hydrate(self, now: datetime) -> bool:
        """Load this month's records (and stored limits) from storage. False if the read failed."""
        cutoff = _month_start(now)
        try:
            if not self._explicit_limits:
                stored = self._storage.get_limits()
                if stored is not None:
                    self.limits = replace(stored)
            records = self._storage.list_records_since(cutoff)
        except Exception as exc:
            self._report_storage_error(GENERIC_AGENT, "ledger_read_failed", exc)
            self._records = [r for r in self._records if r.timestamp >= cutoff]
            return False
        self._records = list(records)
        return True

    def _recompute(self, day: str, month: str) -> None:
        """Rebuild every scope from the cached records."""
        self._daily = BudgetScope(
            ScopeKind.DAILY, self.limits.for_kind(ScopeKind.DAILY), period_key=day
        )
        self._monthly = BudgetScope(
            ScopeKind.MONTHLY, self.limits.for_kind(ScopeKind.MONTHLY), period_key=month
        )
        self._per_agent = {}

        for record in self._records:
            if _month_key(record.timestamp) != month:
                continue
            self._monthly.consumed += record.estimated_cost
            self._agent_scope(record.agent_id).consumed += record.estimated_cost
            if _day_key(record.timestamp) == day:
                self._daily.consumed += record.estimated_cost

    def _report_storage_error(self, agent_id: str, error_type: str, exc: Exception) -> None:
        logger.warning(f"Budget storage error ({error_type}), continuing without it: {exc}")
        if self._metrics is not None:
            self._metrics.record_error(
                agent_id=agent_id,
                error_type=error_type,
                error_message=str(exc),
            )
