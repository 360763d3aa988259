"""
Portfolio API Routes

Endpoints for per-symbol analysis, portfolio evaluation, opportunity
scanning and JSON backup export/import.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from modules.backup import BackupError, build_backup, default_settings, import_backup
from modules.market_data import MarketDataError, get_stock_snapshot
from modules.portfolio_engine import (
    calculate_portfolio,
    fetch_snapshots,
    scan_opportunities,
    summarize_portfolio,
)
from modules.portfolio_models import Transaction, UserSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["portfolio"])


class AnalyzePortfolioRequest(BaseModel):
    """Transaction log plus optional settings (defaults from config)."""
    transactions: List[Transaction] = Field(default_factory=list)
    settings: Optional[UserSettings] = None


class OpportunitiesRequest(BaseModel):
    symbols: List[str] = Field(..., min_length=1)
    settings: Optional[UserSettings] = None


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


@router.get("/stocks/{symbol}")
async def get_stock(symbol: str):
    """Indicators and bandarmology flow for one symbol."""
    try:
        snapshot = await run_in_threadpool(get_stock_snapshot, symbol)
    except MarketDataError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return _dump(snapshot)


@router.post("/portfolio/analyze")
async def analyze_portfolio(payload: AnalyzePortfolioRequest):
    settings = payload.settings or default_settings()
    symbols = [t.symbol for t in payload.transactions]

    snapshots, errors = await run_in_threadpool(fetch_snapshots, symbols)
    items = calculate_portfolio(payload.transactions, snapshots, settings)
    summary = summarize_portfolio(items, settings)

    return {
        "items": [_dump(item) for item in items],
        "summary": _dump(summary),
        "errors": errors,
    }


@router.post("/portfolio/opportunities")
async def find_opportunities(payload: OpportunitiesRequest):
    settings = payload.settings or default_settings()

    snapshots, errors = await run_in_threadpool(fetch_snapshots, payload.symbols)
    results = scan_opportunities(snapshots, settings)

    return {
        "results": [_dump(r) for r in results],
        "errors": errors,
    }


@router.post("/portfolio/export")
async def export_portfolio(payload: AnalyzePortfolioRequest):
    return _dump(build_backup(payload.transactions, payload.settings))


@router.post("/portfolio/import")
async def import_portfolio(payload: Dict[str, Any]):
    try:
        backup = import_backup(payload)
    except BackupError as e:
        logger.warning(f"Rejected backup import: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "transactions": [_dump(t) for t in backup.transactions],
        "settings": _dump(backup.settings),
    }
