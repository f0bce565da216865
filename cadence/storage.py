"""Storage backends for budget limits and usage records."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol
import json
import sqlite3

from cadence.models import BudgetLimits, UsageRecord


class StorageBackend(Protocol):
    """Storage backend interface."""

    def get_limits(self) -> Optional[BudgetLimits]:
        ...

    def set_limits(self, limits: BudgetLimits) -> BudgetLimits:
        ...

    def add_record(self, record: UsageRecord) -> UsageRecord:
        ...

    def list_records(self) -> List[UsageRecord]:
        ...

    def list_records_since(self, cutoff: datetime) -> List[UsageRecord]:
        ...

    def clear_records(self) -> None:
        ...


def _ensure_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


class InMemoryStorage:
    """In-memory storage backend (default)."""

    def __init__(self):
        self._limits: Optional[BudgetLimits] = None
        self._records: List[UsageRecord] = []

    def get_limits(self) -> Optional[BudgetLimits]:
        return self._limits

    def set_limits(self, limits: BudgetLimits) -> BudgetLimits:
        self._limits = limits
        return limits

    def add_record(self, record: UsageRecord) -> UsageRecord:
        self._records.append(record)
        return record

    def list_records(self) -> List[UsageRecord]:
        return list(self._records)

    def list_records_since(self, cutoff: datetime) -> List[UsageRecord]:
        return [r for r in self._records if r.timestamp >= cutoff]

    def clear_records(self) -> None:
        self._records.clear()


class SQLiteStorage:
    """SQLite-backed storage backend."""

    def __init__(self, db_path: str = "cadence.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS budget_limits (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                daily_usd REAL NOT NULL,
                monthly_usd REAL NOT NULL,
                per_agent_usd REAL NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS usage_records (
                record_id TEXT PRIMARY KEY,
                agent_id TEXT NOT NULL,
                model_id TEXT NOT NULL,
                estimated_cost REAL NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_agent ON usage_records(agent_id)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_usage_time ON usage_records(timestamp)")
        self._conn.commit()

    def get_limits(self) -> Optional[BudgetLimits]:
        row = self._conn.execute("SELECT * FROM budget_limits WHERE id = 1").fetchone()
        if not row:
            return None
        return BudgetLimits(
            daily_usd=row["daily_usd"],
            monthly_usd=row["monthly_usd"],
            per_agent_usd=row["per_agent_usd"],
        )

    def set_limits(self, limits: BudgetLimits) -> BudgetLimits:
        self._conn.execute(
            """
            INSERT INTO budget_limits (id, daily_usd, monthly_usd, per_agent_usd)
            VALUES (1, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                daily_usd=excluded.daily_usd,
                monthly_usd=excluded.monthly_usd,
                per_agent_usd=excluded.per_agent_usd
            """,
            (limits.daily_usd, limits.monthly_usd, limits.per_agent_usd),
        )
        self._conn.commit()
        return limits

    def add_record(self, record: UsageRecord) -> UsageRecord:
        self._conn.execute(
            """
            INSERT INTO usage_records (record_id, agent_id, model_id, estimated_cost, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                record.record_id,
                record.agent_id,
                record.model_id,
                record.estimated_cost,
                _ensure_utc(record.timestamp).isoformat(),
            ),
        )
        self._conn.commit()
        return record

    def _row_to_record(self, row: sqlite3.Row) -> UsageRecord:
        return UsageRecord(
            agent_id=row["agent_id"],
            model_id=row["model_id"],
            estimated_cost=row["estimated_cost"],
            timestamp=_ensure_utc(datetime.fromisoformat(row["timestamp"])),
            record_id=row["record_id"],
        )

    def list_records(self) -> List[UsageRecord]:
        rows = self._conn.execute("SELECT * FROM usage_records ORDER BY timestamp ASC").fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_records_since(self, cutoff: datetime) -> List[UsageRecord]:
        rows = self._conn.execute(
            "SELECT * FROM usage_records WHERE timestamp >= ? ORDER BY timestamp ASC",
            (_ensure_utc(cutoff).isoformat(),),
        ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def clear_records(self) -> None:
        self._conn.execute("DELETE FROM usage_records")
        self._conn.commit()

    def export_records(self) -> List[Dict[str, str]]:
        return [asdict(r) for r in self.list_records()]

    def close(self) -> None:
        self._conn.close()


class JSONLStorage:
    """
    JSON Lines file-based storage.

    Each line of the records file is one usage record. Limits live in a
    small JSON file next to it.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.limits_path = self.path.with_suffix(".limits.json")

    def get_limits(self) -> Optional[BudgetLimits]:
        if not self.limits_path.exists():
            return None
        with open(self.limits_path, "r") as f:
            data = json.load(f)
        return BudgetLimits(
            daily_usd=data["daily_usd"],
            monthly_usd=data["monthly_usd"],
            per_agent_usd=data["per_agent_usd"],
        )

    def set_limits(self, limits: BudgetLimits) -> BudgetLimits:
        with open(self.limits_path, "w") as f:
            json.dump(asdict(limits), f, indent=2)
        return limits

    def add_record(self, record: UsageRecord) -> UsageRecord:
        line = {
            "record_id": record.record_id,
            "agent_id": record.agent_id,
            "model_id": record.model_id,
            "estimated_cost": record.estimated_cost,
            "timestamp": _ensure_utc(record.timestamp).isoformat(),
        }
        with open(self.path, "a") as f:
            f.write(json.dumps(line) + "\n")
        return record

    def list_records(self) -> List[UsageRecord]:
        if not self.path.exists():
            return []
        records = []
        with open(self.path, "r") as f:
            for line in f:
                if line.strip():
                    data = json.loads(line)
                    records.append(
                        UsageRecord(
                            agent_id=data["agent_id"],
                            model_id=data["model_id"],
                            estimated_cost=data["estimated_cost"],
                            timestamp=_ensure_utc(datetime.fromisoformat(data["timestamp"])),
                            record_id=data["record_id"],
                        )
                    )
        return records

    def list_records_since(self, cutoff: datetime) -> List[UsageRecord]:
        cutoff = _ensure_utc(cutoff)
        return [r for r in self.list_records() if r.timestamp >= cutoff]

    def clear_records(self) -> None:
        if self.path.exists():
            self.path.write_text("")
