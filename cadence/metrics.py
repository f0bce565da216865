"""
Metrics and observability for Cadence.

Provides structured logging and metrics collection for selections,
budget fallbacks, and ledger errors.
"""

import json
import logging
import statistics
from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import datetime, UTC
from typing import Optional, Any
from pathlib import Path


@dataclass
class MetricEvent:
    """A single metric event."""
    timestamp: str
    event_type: str  # selection, fallback, error
    agent_id: str
    data: dict[str, Any]


class MetricsCollector:
    """
    Collects and aggregates metrics from Cadence operations.

    The budget ledger reports persistence failures here so that
    failing open never means failing silently.
    """

    def __init__(
        self,
        metrics_file: Optional[Path] = None,
        enable_logging: bool = True,
    ):
        """
        Initialize metrics collector.

        Args:
            metrics_file: Optional file to write metrics to (JSONL format)
            enable_logging: Whether to enable structured logging
        """
        self.metrics_file = metrics_file
        self.enable_logging = enable_logging

        self.logger = logging.getLogger("cadence.metrics")
        if enable_logging and not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
                )
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

        self._events: list[MetricEvent] = []
        self._counters: dict[str, int] = defaultdict(int)
        self._histograms: dict[str, list[float]] = defaultdict(list)

    def record_selection(
        self,
        agent_id: str,
        model_id: str,
        strategy_used: str,
        complexity: str,
        estimated_cost: float,
        fallback_applied: bool,
        **extra: Any,
    ) -> None:
        """Record a completed model selection."""
        self._record_event(
            event_type="selection",
            agent_id=agent_id,
            data={
                "model_id": model_id,
                "strategy_used": strategy_used,
                "complexity": complexity,
                "estimated_cost_usd": estimated_cost,
                "fallback_applied": fallback_applied,
                **extra,
            },
        )
        self._counters["selections_total"] += 1
        self._counters[f"selections_by_strategy_{strategy_used}"] += 1
        self._counters[f"selections_by_model_{model_id}"] += 1
        self._counters[f"selections_by_complexity_{complexity}"] += 1
        if fallback_applied:
            self._counters["selections_fallback"] += 1
        self._histograms["estimated_cost_usd"].append(estimated_cost)

    def record_fallback(
        self,
        agent_id: str,
        candidate_model: str,
        fallback_model: str,
        estimated_cost: float,
    ) -> None:
        """Record a budget-driven downgrade to an agent's cheap path."""
        self._record_event(
            event_type="fallback",
            agent_id=agent_id,
            data={
                "candidate_model": candidate_model,
                "fallback_model": fallback_model,
                "estimated_cost_usd": estimated_cost,
            },
        )
        self._counters["budget_fallbacks"] += 1

        if self.enable_logging:
            self.logger.warning(
                f"Budget exceeded for agent {agent_id}: "
                f"{candidate_model} -> {fallback_model}"
            )

    def record_error(
        self,
        agent_id: str,
        error_type: str,
        error_message: str,
        **extra: Any,
    ) -> None:
        """Record an error that was handled without failing the caller."""
        self._record_event(
            event_type="error",
            agent_id=agent_id,
            data={
                "error_type": error_type,
                "error_message": error_message,
                **extra,
            },
        )
        self._counters["errors_total"] += 1
        self._counters[f"errors_{error_type}"] += 1

        if self.enable_logging:
            self.logger.error(
                f"Error for agent {agent_id}: {error_type} - {error_message}"
            )

    def _record_event(
        self,
        event_type: str,
        agent_id: str,
        data: dict,
    ) -> None:
        """Record a metric event."""
        event = MetricEvent(
            timestamp=datetime.now(UTC).isoformat(),
            event_type=event_type,
            agent_id=agent_id,
            data=data,
        )

        self._events.append(event)

        if self.metrics_file:
            try:
                with open(self.metrics_file, "a") as f:
                    f.write(json.dumps(asdict(event)) + "\n")
            except OSError as exc:
                self.logger.warning(f"Could not write metrics file {self.metrics_file}: {exc}")

        if self.enable_logging:
            self.logger.info(
                f"{event_type.upper()}: agent_id={agent_id}, data={data}"
            )

    def get_events(self, event_type: Optional[str] = None) -> list[MetricEvent]:
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.event_type == event_type]

    def get_stats(self) -> dict:
        """
        Get aggregated statistics.

        Returns:
            Dictionary with metrics summary
        """
        costs = self._histograms.get("estimated_cost_usd", [])
        selections = self._counters.get("selections_total", 0)

        return {
            "counters": dict(self._counters),
            "cost": {
                "total_usd": sum(costs),
                "avg_usd": statistics.mean(costs) if costs else 0,
                "p50_usd": statistics.median(costs) if costs else 0,
            },
            "fallback_rate": (
                self._counters.get("selections_fallback", 0) / selections
                if selections else 0.0
            ),
            "total_events": len(self._events),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._events.clear()
        self._counters.clear()
        self._histograms.clear()
