"""Tests for storage backends."""

from datetime import datetime, timezone, timedelta
import tempfile

from cadence.cost_control import BudgetLedger
from cadence.models import BudgetLimits, ScopeKind, UsageRecord
from cadence.storage import InMemoryStorage, JSONLStorage, SQLiteStorage


def test_sqlite_storage_persists_records():
    """SQLite storage should persist records across instances."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = f"{tmpdir}/cadence.db"

        storage = SQLiteStorage(db_path=db_path)
        ledger = BudgetLedger(storage=storage)
        ledger.record_usage("frontend", "gpt-4", 0.05)
        storage.close()

        storage2 = SQLiteStorage(db_path=db_path)
        ledger2 = BudgetLedger(storage=storage2)
        records = ledger2.export_records()
        assert len(records) == 1
        assert records[0]["agent_id"] == "frontend"
        assert ledger2.get_agent_usage("frontend") == 0.05
        storage2.close()


def test_sqlite_storage_limits_roundtrip():
    """SQLite storage should store and load limits."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = f"{tmpdir}/cadence.db"
        storage = SQLiteStorage(db_path=db_path)

        assert storage.get_limits() is None
        storage.set_limits(BudgetLimits(daily_usd=1.0, monthly_usd=20.0, per_agent_usd=4.0))
        storage.set_limits(BudgetLimits(daily_usd=2.0, monthly_usd=20.0, per_agent_usd=4.0))

        limits = storage.get_limits()
        assert limits.daily_usd == 2.0
        assert limits.per_agent_usd == 4.0
        storage.close()


def test_sqlite_records_since_and_clear():
    """Cutoff filtering and clearing work on SQLite."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = SQLiteStorage(db_path=f"{tmpdir}/cadence.db")
        now = datetime(2026, 5, 20, 12, 0, tzinfo=timezone.utc)

        storage.add_record(UsageRecord("a", "gpt-4", 0.1, timestamp=now - timedelta(days=40)))
        storage.add_record(UsageRecord("a", "gpt-4", 0.2, timestamp=now))

        recent = storage.list_records_since(now - timedelta(days=1))
        assert [r.estimated_cost for r in recent] == [0.2]
        assert recent[0].timestamp == now
        assert len(storage.export_records()) == 2

        storage.clear_records()
        assert storage.list_records() == []
        storage.close()


def test_jsonl_storage_persists_records():
    """JSONL storage should survive a new ledger instance."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = f"{tmpdir}/usage/records.jsonl"

        ledger = BudgetLedger(storage=JSONLStorage(path))
        ledger.record_usage("backend", "claude-3-sonnet", 0.03)
        ledger.update_budget("monthly", 25.0)

        ledger2 = BudgetLedger(storage=JSONLStorage(path))
        assert ledger2.get_agent_usage("backend") == 0.03
        assert ledger2.get_scope(ScopeKind.MONTHLY).limit == 25.0


def test_jsonl_storage_naive_timestamps_are_utc():
    """Naive timestamps are stored as UTC."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JSONLStorage(f"{tmpdir}/records.jsonl")
        storage.add_record(UsageRecord("a", "gpt-4", 0.1, timestamp=datetime(2026, 1, 2, 3, 4)))

        record = storage.list_records()[0]
        assert record.timestamp.tzinfo is not None
        assert record.timestamp.hour == 3


def test_jsonl_storage_clear():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JSONLStorage(f"{tmpdir}/records.jsonl")
        assert storage.list_records() == []
        assert storage.get_limits() is None

        storage.add_record(UsageRecord("a", "gpt-4", 0.1))
        storage.clear_records()
        assert storage.list_records() == []


def test_in_memory_storage():
    storage = InMemoryStorage()
    record = UsageRecord("a", "gpt-4", 0.1)

    assert storage.add_record(record) is record
    assert storage.list_records() == [record]
    assert storage.get_limits() is None

    storage.clear_records()
    assert storage.list_records() == []
