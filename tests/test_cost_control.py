"""Tests for the budget ledger."""

import threading
from datetime import datetime, UTC, timedelta

import pytest

from cadence.cost_control import BudgetLedger
from cadence.metrics import MetricsCollector
from cadence.models import BudgetLimits, ScopeKind, UsageRecord
from cadence.registry import ModelRegistry
from cadence.schemas import ModelDescriptor, Provider, Tier
from cadence.storage import InMemoryStorage


class FakeClock:
    """Settable clock for period rollover tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FlakyStorage(InMemoryStorage):
    """In-memory storage whose first reads fail."""

    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    def list_records_since(self, cutoff):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database is locked")
        return super().list_records_since(cutoff)


class FailingStorage:
    """Storage whose every call fails."""

    def get_limits(self):
        raise RuntimeError("disk unavailable")

    def set_limits(self, limits):
        raise RuntimeError("disk unavailable")

    def add_record(self, record):
        raise RuntimeError("disk unavailable")

    def list_records(self):
        raise RuntimeError("disk unavailable")

    def list_records_since(self, cutoff):
        raise RuntimeError("disk unavailable")

    def clear_records(self):
        raise RuntimeError("disk unavailable")


class TestCostCalculation:
    """Test pricing and estimation."""

    def setup_method(self):
        self.ledger = BudgetLedger()

    def test_calculate_cost_gpt4(self):
        assert self.ledger.calculate_cost("gpt-4", 1000, 500) == pytest.approx(0.06)

    def test_calculate_cost_cheap_models(self):
        assert self.ledger.calculate_cost("gpt-3.5-turbo", 1000, 500) == pytest.approx(0.00125)
        assert self.ledger.calculate_cost("claude-3-opus", 1000, 500) == pytest.approx(0.0525)

    def test_calculate_cost_unknown_model(self):
        assert self.ledger.calculate_cost("unknown-model", 1000, 500) == 0.0

    def test_estimate_uses_pricing(self):
        """An empty task costs the fixed overhead."""
        assert self.ledger.estimate_cost("gpt-4", "") == pytest.approx(0.06)

    def test_estimate_grows_with_text(self):
        short = self.ledger.estimate_cost("gpt-4", "fix typo")
        long = self.ledger.estimate_cost("gpt-4", "fix typo " * 500)
        assert long > short

    def test_estimate_unregistered_model(self):
        """Unknown ids are charged at the medium rate."""
        assert self.ledger.estimate_cost("gpt-5", "") == pytest.approx(0.015)
        assert self.ledger.estimate_cost(None, None) == pytest.approx(0.015)

    def test_estimate_by_cost_class(self):
        """Registered models without pricing use their cost class."""
        registry = ModelRegistry([
            ModelDescriptor("local-7b", Provider.OPENAI, Tier.STANDARD, "low", "fast"),
        ])
        ledger = BudgetLedger(registry=registry)
        assert ledger.estimate_cost("local-7b", "") == pytest.approx(0.0015)


class TestBudgetChecks:
    """Test affordability across scopes."""

    def test_defaults(self):
        ledger = BudgetLedger()
        assert ledger.get_scope(ScopeKind.DAILY).limit == 5.00
        assert ledger.get_scope(ScopeKind.MONTHLY).limit == 50.00
        assert ledger.get_scope(ScopeKind.PER_AGENT, "frontend").limit == 10.00

    def test_record_charges_all_scopes(self):
        ledger = BudgetLedger()
        record = ledger.record_usage("frontend", "gpt-4", 0.5)

        assert record.agent_id == "frontend"
        assert record.estimated_cost == 0.5
        assert ledger.get_scope(ScopeKind.DAILY).consumed == pytest.approx(0.5)
        assert ledger.get_scope(ScopeKind.MONTHLY).consumed == pytest.approx(0.5)
        assert ledger.get_agent_usage("frontend") == pytest.approx(0.5)
        assert ledger.get_agent_usage("backend") == 0.0

    def test_daily_limit_blocks(self):
        ledger = BudgetLedger(limits=BudgetLimits(daily_usd=0.10))
        assert ledger.can_afford("frontend", "", model_id="gpt-4") is True

        ledger.record_usage("frontend", "gpt-4", 0.06)
        assert ledger.can_afford("frontend", "", model_id="gpt-4") is False
        assert ledger.can_afford("frontend", "", model_id="gpt-3.5-turbo") is True

    def test_per_agent_limit_is_isolated(self):
        """One agent running dry does not block another."""
        ledger = BudgetLedger(limits=BudgetLimits(per_agent_usd=0.10))
        ledger.record_usage("frontend", "gpt-4", 0.08)

        assert ledger.can_afford("frontend", "", model_id="gpt-4") is False
        assert ledger.can_afford("backend", "", model_id="gpt-4") is True

    def test_monthly_limit_blocks(self):
        ledger = BudgetLedger(limits=BudgetLimits(daily_usd=5.0, monthly_usd=0.05))
        assert ledger.can_afford("frontend", "", model_id="gpt-4") is False

    def test_missing_agent_is_generic(self):
        ledger = BudgetLedger()
        record = ledger.record_usage(None, "gpt-4", 0.01)
        assert record.agent_id == "general"
        assert ledger.can_afford(None, None) is True

    def test_remaining_is_clamped(self):
        ledger = BudgetLedger(limits=BudgetLimits(daily_usd=1.0))
        ledger.record_usage("frontend", "gpt-4", 3.0)
        assert ledger.remaining(ScopeKind.DAILY) == 0.0
        assert ledger.remaining("per-agent", "frontend") == pytest.approx(7.0)


class TestPeriodRollover:
    """Test lazy period resets."""

    def setup_method(self):
        self.clock = FakeClock(datetime(2026, 3, 10, 22, 0, tzinfo=UTC))
        self.ledger = BudgetLedger(
            limits=BudgetLimits(daily_usd=1.0, monthly_usd=3.0, per_agent_usd=2.0),
            clock=self.clock,
        )

    def test_daily_reset(self):
        """A new day clears daily spend only."""
        self.ledger.record_usage("frontend", "gpt-4", 1.0)
        assert self.ledger.can_afford("frontend", "", model_id="gpt-4") is False

        self.clock.advance(hours=3)

        assert self.ledger.can_afford("frontend", "", model_id="gpt-4") is True
        assert self.ledger.get_scope(ScopeKind.DAILY).consumed == 0.0
        assert self.ledger.get_scope(ScopeKind.DAILY).period_key == "2026-03-11"
        assert self.ledger.get_scope(ScopeKind.MONTHLY).consumed == pytest.approx(1.0)
        assert self.ledger.get_agent_usage("frontend") == pytest.approx(1.0)

    def test_monthly_reset(self):
        """A new month clears monthly and per-agent spend."""
        self.ledger.record_usage("frontend", "gpt-4", 0.9)
        self.clock.now = datetime(2026, 4, 1, 0, 5, tzinfo=UTC)

        assert self.ledger.get_scope(ScopeKind.MONTHLY).consumed == 0.0
        assert self.ledger.get_scope(ScopeKind.MONTHLY).period_key == "2026-04"
        assert self.ledger.get_agent_usage("frontend") == 0.0

    def test_records_survive_restart_within_month(self):
        """A new ledger on the same storage hydrates this month's spend."""
        storage = InMemoryStorage()
        first = BudgetLedger(storage=storage, clock=self.clock)
        first.record_usage("backend", "gpt-4", 0.4)

        self.clock.advance(days=1)
        second = BudgetLedger(storage=storage, clock=self.clock)

        assert second.get_scope(ScopeKind.MONTHLY).consumed == pytest.approx(0.4)
        assert second.get_scope(ScopeKind.DAILY).consumed == 0.0
        assert second.get_agent_usage("backend") == pytest.approx(0.4)


class TestAdministration:
    """Test budget updates, stats and resets."""

    def test_update_budget(self):
        ledger = BudgetLedger()
        limits = ledger.update_budget("daily", 10.0)

        assert limits.daily_usd == 10.0
        assert ledger.get_scope(ScopeKind.DAILY).limit == 10.0

    def test_update_budget_aliases(self):
        ledger = BudgetLedger()
        ledger.update_budget("perAgent", 3.0)
        ledger.update_budget(ScopeKind.MONTHLY, 30.0)

        assert ledger.get_scope(ScopeKind.PER_AGENT, "x").limit == 3.0
        assert ledger.limits.monthly_usd == 30.0

    def test_limits_for_kind(self):
        limits = BudgetLimits(daily_usd=1.0, monthly_usd=2.0, per_agent_usd=3.0)
        assert limits.for_kind(ScopeKind.DAILY) == 1.0
        assert limits.for_kind(ScopeKind.MONTHLY) == 2.0
        assert limits.for_kind(ScopeKind.PER_AGENT) == 3.0

    def test_update_budget_rejects_negative(self):
        ledger = BudgetLedger()
        with pytest.raises(ValueError):
            ledger.update_budget("daily", -5)

    def test_update_budget_rejects_unknown_kind(self):
        ledger = BudgetLedger()
        with pytest.raises(ValueError):
            ledger.update_budget("weekly", 5)

    def test_updated_limits_are_persisted(self):
        """Stored limits are picked up by a ledger built without explicit limits."""
        storage = InMemoryStorage()
        BudgetLedger(storage=storage).update_budget("daily", 2.0)

        assert storage.get_limits().daily_usd == 2.0
        assert BudgetLedger(storage=storage).get_scope(ScopeKind.DAILY).limit == 2.0

    def test_usage_stats(self):
        ledger = BudgetLedger()
        ledger.record_usage("frontend", "gpt-4", 0.5)
        ledger.record_usage("backend", "claude-3-haiku", 0.5)

        stats = ledger.get_usage_stats()

        assert stats["limits"] == {"daily": 5.0, "monthly": 50.0, "perAgent": 10.0}
        assert stats["daily"]["cost"] == pytest.approx(1.0)
        assert stats["daily"]["requests"] == 2
        assert stats["daily"]["budget"] == 5.0
        assert stats["daily"]["percent_used"] == pytest.approx(20.0)
        assert stats["monthly"]["cost"] == pytest.approx(1.0)
        assert stats["monthly"]["by_model"] == {"gpt-4": 0.5, "claude-3-haiku": 0.5}
        assert stats["per_agent"]["frontend"]["cost"] == pytest.approx(0.5)

    def test_reset_usage(self):
        ledger = BudgetLedger()
        ledger.record_usage("frontend", "gpt-4", 0.5)
        ledger.reset_usage()

        assert ledger.get_agent_usage("frontend") == 0.0
        assert ledger.get_scope(ScopeKind.DAILY).consumed == 0.0
        assert ledger.export_records() == []

    def test_export_records(self):
        ledger = BudgetLedger()
        ledger.record_usage("frontend", "gpt-4", 0.5)

        records = ledger.export_records()
        assert len(records) == 1
        assert records[0]["agent_id"] == "frontend"
        assert records[0]["model_id"] == "gpt-4"
        assert records[0]["record_id"]


class TestFailOpen:
    """Test behaviour when storage fails."""

    def setup_method(self):
        self.metrics = MetricsCollector(enable_logging=False)
        self.ledger = BudgetLedger(storage=FailingStorage(), metrics=self.metrics)

    def test_read_failure_is_affordable(self):
        assert self.ledger.can_afford("frontend", "task", model_id="gpt-4") is True
        assert self.metrics.get_stats()["counters"]["errors_ledger_read_failed"] == 1

    def test_write_failure_keeps_charge(self):
        """The record is kept in memory and the error is reported."""
        record = self.ledger.record_usage("frontend", "gpt-4", 0.2)

        assert record.model_id == "gpt-4"
        assert self.ledger.get_agent_usage("frontend") == pytest.approx(0.2)
        assert self.metrics.get_stats()["counters"]["errors_ledger_write_failed"] == 1

    def test_read_is_retried_after_transient_failure(self):
        """Stored spend is picked up once storage recovers."""
        storage = FlakyStorage(failures=1)
        storage.add_record(UsageRecord("frontend", "gpt-4", 4.97))
        ledger = BudgetLedger(
            limits=BudgetLimits(daily_usd=5.0),
            storage=storage,
            metrics=self.metrics,
        )

        assert ledger.can_afford("frontend", "", model_id="gpt-4") is True
        assert ledger.get_scope(ScopeKind.DAILY).consumed == pytest.approx(4.97)
        assert ledger.can_afford("frontend", "", model_id="gpt-4") is False
        assert self.metrics.get_stats()["counters"]["errors_ledger_read_failed"] == 1

    def test_admin_calls_do_not_raise(self):
        self.ledger.update_budget("daily", 1.0)
        self.ledger.reset_usage()
        assert self.metrics.get_stats()["counters"]["errors_total"] >= 2


class TestConcurrency:
    """Test thread safety."""

    def test_concurrent_records(self):
        ledger = BudgetLedger()

        def worker():
            for _ in range(50):
                ledger.record_usage("testing", "gpt-3.5-turbo", 0.001)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ledger.export_records()) == 400
        assert ledger.get_agent_usage("testing") == pytest.approx(0.4)
