"""FastAPI server for Cadence."""

from __future__ import annotations

import os
import threading
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, HTTPException, Header, Depends, Query
from pydantic import BaseModel, Field

from cadence import (
    BudgetLedger,
    BudgetLimits,
    ComplexityEstimator,
    ConfigError,
    MetricsCollector,
    ModelSelector,
    SelectionResult,
    SelectorConfig,
    ScopeKind,
    SQLiteStorage,
    load_config,
)
from cadence import __version__


def _get_api_key() -> Optional[str]:
    return os.getenv("CADENCE_API_KEY")


def _require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    api_key = _get_api_key()
    if api_key and x_api_key != api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _selector() -> ModelSelector:
    try:
        config = SelectorConfig.from_mapping(load_config())
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=f"Invalid configuration: {exc}") from exc

    ledger = _shared_ledger(os.getenv("CADENCE_DB_PATH", "cadence.db"), config.budgets)
    return ModelSelector(config, ledger=ledger, metrics=ledger.metrics)


_ledgers: Dict[str, BudgetLedger] = {}
_ledgers_lock = threading.Lock()


def _shared_ledger(db_path: str, limits: BudgetLimits) -> BudgetLedger:
    """One ledger per database, so every request shares its lock."""
    with _ledgers_lock:
        ledger = _ledgers.get(db_path)
        if ledger is None:
            ledger = BudgetLedger(
                limits=limits,
                storage=SQLiteStorage(db_path=db_path),
                metrics=MetricsCollector(),
            )
            _ledgers[db_path] = ledger
        elif ledger.limits != limits:
            for kind in ScopeKind:
                ledger.update_budget(kind, limits.for_kind(kind))
        return ledger


app = FastAPI(title="Cadence API", version=__version__)


COMPLEXITY_PATTERN = "^(simple|moderate|complex)$"


class SelectRequest(BaseModel):
    agent_id: Optional[str] = None
    task_text: str = ""
    explicit_complexity: Optional[str] = Field(None, pattern=COMPLEXITY_PATTERN)
    phase_override: Optional[str] = None
    strategy: Optional[str] = None


class SelectResponse(BaseModel):
    model_id: str
    strategy_used: str
    fallback_applied: bool
    estimated_cost: float
    complexity: str


class AnalyzeRequest(BaseModel):
    task_text: str = ""


def _to_response(result: SelectionResult) -> SelectResponse:
    return SelectResponse(
        model_id=result.model_id,
        strategy_used=result.strategy_used,
        fallback_applied=result.fallback_applied,
        estimated_cost=result.estimated_cost,
        complexity=result.complexity.value,
    )


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/select", response_model=SelectResponse, dependencies=[Depends(_require_api_key)])
def select(req: SelectRequest, selector: ModelSelector = Depends(_selector)) -> SelectResponse:
    result = selector.select_model(
        req.agent_id,
        req.task_text,
        req.explicit_complexity,
        phase_override=req.phase_override,
        strategy=req.strategy,
    )
    return _to_response(result)


@app.post("/select/preview", response_model=SelectResponse, dependencies=[Depends(_require_api_key)])
def preview(req: SelectRequest, selector: ModelSelector = Depends(_selector)) -> SelectResponse:
    result = selector.preview_model(
        req.agent_id,
        req.task_text,
        req.explicit_complexity,
        phase_override=req.phase_override,
        strategy=req.strategy,
    )
    return _to_response(result)


@app.post("/analyze", dependencies=[Depends(_require_api_key)])
def analyze(req: AnalyzeRequest) -> Dict[str, Any]:
    estimator = ComplexityEstimator()
    analysis = estimator.analyze(req.task_text)
    return {
        **analysis.to_dict(),
        "recommendation": estimator.get_recommendation(analysis),
    }


@app.get("/models", dependencies=[Depends(_require_api_key)])
def models(
    tier: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    selector: ModelSelector = Depends(_selector),
) -> List[Dict[str, Any]]:
    return selector.list_models(tier=tier, provider=provider)


@app.get("/usage", dependencies=[Depends(_require_api_key)])
def usage(selector: ModelSelector = Depends(_selector)) -> Dict[str, Any]:
    return selector.get_usage_stats()
