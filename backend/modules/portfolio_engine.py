"""
Portfolio Engine.
Joins positions with market snapshots and runs the suggestion and
trading plan generators per symbol. Also scans non-held symbols for
entries and fetches snapshots for many symbols in parallel.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import config
from modules.market_data import MarketData, MarketDataError, get_stock_snapshot
from modules.portfolio_models import (
    OpportunityResult,
    PortfolioItem,
    PortfolioSummary,
    StockSnapshot,
    Transaction,
    UserSettings,
    normalize_symbol,
)
from modules.position_aggregator import aggregate_positions
from modules.suggestion_engine import generate_suggestion
from modules.trading_plan import generate_trading_plan

logger = logging.getLogger(__name__)

ACTION_RANK = {"STRONG_BUY": 100, "BUY": 50}
URGENCY_RANK = {"IMMEDIATE": 30, "SOON": 15}


def calculate_portfolio(
    transactions: Iterable[Transaction],
    snapshots: Mapping[str, StockSnapshot],
    settings: UserSettings,
) -> List[PortfolioItem]:
    """
    One PortfolioItem per symbol in the transaction log, in order of first appearance.

    A symbol without a snapshot is valued at 0 and gets the default
    suggestion and plan.
    """
    positions = aggregate_positions(transactions)

    market_values = {}
    for symbol, pos in positions.items():
        snap = snapshots.get(symbol)
        price = snap.current_price if snap else 0.0
        market_values[symbol] = pos.total_lots * config.LOT_SIZE * price

    available_capital = settings.total_capital - sum(market_values.values())

    items = []
    for symbol, pos in positions.items():
        snap = snapshots.get(symbol)
        if snap is None:
            logger.warning(f"[{symbol}] No market snapshot, using defaults")

        current_price = snap.current_price if snap else 0.0
        market_value = market_values[symbol]
        unrealized_pl = market_value - pos.cost_basis
        pl_percent = unrealized_pl / pos.cost_basis * 100 if pos.cost_basis > 0 else 0.0
        allocation = market_value / settings.total_capital * 100 if settings.total_capital > 0 else 0.0

        items.append(PortfolioItem(
            symbol=symbol,
            total_lots=pos.total_lots,
            avg_price=pos.avg_price,
            current_price=current_price,
            market_value=market_value,
            cost_basis=pos.cost_basis,
            unrealized_pl=unrealized_pl,
            unrealized_pl_percent=pl_percent,
            allocation_percent=allocation,
            indicators=snap.indicators if snap else None,
            flow=snap.flow if snap else None,
            suggestion=generate_suggestion(snap, pos.avg_price, pl_percent, settings),
            trading_plan=generate_trading_plan(
                snap, pos.total_lots, pos.avg_price, pl_percent, settings, available_capital
            ),
        ))

    return items


def summarize_portfolio(items: List[PortfolioItem], settings: UserSettings) -> PortfolioSummary:
    total_value = sum(item.market_value for item in items)
    total_cost = sum(item.cost_basis for item in items)
    total_pl = total_value - total_cost
    return PortfolioSummary(
        total_market_value=total_value,
        total_cost=total_cost,
        total_pl=total_pl,
        total_pl_percent=total_pl / total_cost * 100 if total_cost > 0 else 0.0,
        cash_remaining=settings.total_capital - total_cost,
    )


def analyze_potential_buy(
    snapshot: StockSnapshot,
    settings: UserSettings,
    available_capital: Optional[float] = None,
) -> OpportunityResult:
    """
    Treat a non-held symbol as a prospective entry at the current price.

    Rank: +100 STRONG_BUY, +50 BUY, +30 IMMEDIATE, +15 SOON, plus the flow score.
    """
    capital = settings.total_capital if available_capital is None else available_capital
    price = snapshot.current_price

    suggestion = generate_suggestion(snapshot, price, 0.0, settings)
    plan = generate_trading_plan(snapshot, 0, price, 0.0, settings, capital)

    rank = ACTION_RANK.get(suggestion.action, 0) + URGENCY_RANK.get(suggestion.urgency, 0)
    if snapshot.flow is not None:
        rank += snapshot.flow.score

    return OpportunityResult(
        symbol=snapshot.symbol,
        current_price=price,
        flow=snapshot.flow,
        indicators=snapshot.indicators,
        suggestion=suggestion,
        trading_plan=plan,
        rank_score=rank,
    )


def scan_opportunities(
    snapshots: Mapping[str, StockSnapshot],
    settings: UserSettings,
    available_capital: Optional[float] = None,
) -> List[OpportunityResult]:
    """Prospective-entry analysis for every snapshot, best rank first."""
    results = [analyze_potential_buy(snap, settings, available_capital) for snap in snapshots.values()]
    results.sort(key=lambda r: r.rank_score, reverse=True)
    return results


def fetch_snapshots(
    symbols: Iterable[str],
    max_workers: int = None,
    market_data: MarketData = None,
) -> Tuple[Dict[str, StockSnapshot], Dict[str, str]]:
    """
    Fetch and analyze many symbols in parallel.

    Returns:
        (snapshots, errors): both keyed by symbol. A symbol appears in exactly one.
    """
    codes = (normalize_symbol(s) for s in symbols if s)
    unique = [c for c in dict.fromkeys(codes) if c]
    snapshots: Dict[str, StockSnapshot] = {}
    errors: Dict[str, str] = {}
    if not unique:
        return snapshots, errors

    md = market_data or MarketData()
    workers = max(1, min(max_workers or config.FETCH_MAX_WORKERS, len(unique)))

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_to_symbol = {executor.submit(get_stock_snapshot, s, md): s for s in unique}

        for future in as_completed(future_to_symbol):
            symbol = future_to_symbol[future]
            try:
                snap = future.result()
            except MarketDataError as e:
                logger.warning(f"[{symbol}] {e.message}")
                errors[symbol] = e.message
                continue
            except Exception as e:
                logger.error(f"[{symbol}] Snapshot failed: {e}")
                errors[symbol] = f"Analysis failed for {symbol}: {e}"
                continue
            snapshots[symbol] = snap

    logger.info(f"Fetched {len(snapshots)}/{len(unique)} snapshots")
    return snapshots, errors
