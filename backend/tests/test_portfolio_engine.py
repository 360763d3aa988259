import pytest

from modules.market_data import MarketDataError
from modules.portfolio_engine import (
    analyze_potential_buy,
    calculate_portfolio,
    fetch_snapshots,
    scan_opportunities,
    summarize_portfolio,
)
from modules.portfolio_models import FlowAnalysis, Indicators, StockSnapshot, Transaction, UserSettings


def _settings():
    return UserSettings(
        total_capital=100_000_000,
        max_allocation_per_stock=15,
        risk_tolerance="MODERATE",
        take_profit_target=20,
        stop_loss_target=7,
    )


def _snapshot(symbol, price, trend="SIDEWAYS", flow=None):
    return StockSnapshot(
        symbol=symbol,
        name=symbol,
        current_price=price,
        indicators=Indicators(
            rsi=50.0, ma5=price, ma20=price, ma60=price, atr=0.0, volume_change_percent=0.0,
            trend=trend, volume_flow="NEUTRAL", support=0.0, resistance=0.0, price_position=50.0,
        ),
        flow=FlowAnalysis(**(flow or {})),
    )


def test_calculate_portfolio_joins_positions_and_snapshots():
    transactions = [
        Transaction(symbol="BBCA", lots=9, price=1910),
        Transaction(symbol="TLKM", lots=10, price=3000),
        Transaction(symbol="BBCA", lots=5, price=2100, type="SELL"),
    ]
    snapshots = {"BBCA": _snapshot("BBCA", 2200.0)}

    items = calculate_portfolio(transactions, snapshots, _settings())

    assert [i.symbol for i in items] == ["BBCA", "TLKM"]

    bbca, tlkm = items
    assert bbca.total_lots == 4
    assert bbca.avg_price == pytest.approx(1910)
    assert bbca.market_value == pytest.approx(880_000)
    assert bbca.cost_basis == pytest.approx(764_000)
    assert bbca.unrealized_pl == pytest.approx(116_000)
    assert bbca.unrealized_pl_percent == pytest.approx(116_000 / 764_000 * 100)
    assert bbca.allocation_percent == pytest.approx(0.88)
    assert bbca.suggestion.action == "TAKE_PROFIT"
    assert bbca.suggestion.urgency == "SOON"
    assert bbca.trading_plan.position_health == "GOOD"

    # No market data: valued at zero with default analysis
    assert tlkm.current_price == 0
    assert tlkm.market_value == 0
    assert tlkm.suggestion.reason == "Data not available."
    assert tlkm.trading_plan.immediate_action == "Data not available"


def test_summary_uses_cost_for_cash_remaining():
    transactions = [
        Transaction(symbol="BBCA", lots=4, price=1910),
        Transaction(symbol="TLKM", lots=10, price=3000),
    ]
    snapshots = {"BBCA": _snapshot("BBCA", 2200.0), "TLKM": _snapshot("TLKM", 2700.0)}
    settings = _settings()

    summary = summarize_portfolio(calculate_portfolio(transactions, snapshots, settings), settings)

    assert summary.total_cost == pytest.approx(3_764_000)
    assert summary.total_market_value == pytest.approx(880_000 + 2_700_000)
    assert summary.total_pl == pytest.approx(3_580_000 - 3_764_000)
    assert summary.total_pl_percent == pytest.approx((3_580_000 - 3_764_000) / 3_764_000 * 100)
    assert summary.cash_remaining == pytest.approx(100_000_000 - 3_764_000)


def test_portfolio_item_serializes_camel_case():
    items = calculate_portfolio(
        [Transaction(symbol="BBCA", lots=1, price=2000)],
        {"BBCA": _snapshot("BBCA", 2000.0)},
        _settings(),
    )

    data = items[0].model_dump(by_alias=True)

    assert "unrealizedPL" in data
    assert "unrealizedPLPercent" in data
    assert "tradingPlan" in data
    assert "takeProfit1" in data["tradingPlan"]
    assert "lotsToSell" in data["tradingPlan"]["sellStrategy"][0]


def test_potential_buy_rank_score():
    snap = _snapshot("ADRO", 2500.0, trend="UP", flow={"score": 80, "status": "STRONG_ACCUMULATION"})

    result = analyze_potential_buy(snap, _settings())

    assert result.suggestion.action == "STRONG_BUY"
    assert result.suggestion.urgency == "SOON"
    assert result.rank_score == 100 + 15 + 80
    assert result.trading_plan.position_health == "GOOD"


def test_scan_opportunities_sorted_by_rank():
    snapshots = {
        "AAAA": _snapshot("AAAA", 1000.0),
        "BBBB": _snapshot("BBBB", 1000.0, trend="UP", flow={"score": 80, "status": "STRONG_ACCUMULATION"}),
        "CCCC": _snapshot("CCCC", 1000.0, flow={"score": 65, "status": "ACCUMULATION"}),
    }

    results = scan_opportunities(snapshots, _settings())

    assert [r.symbol for r in results] == ["BBBB", "CCCC", "AAAA"]
    assert results[1].suggestion.action == "BUY"
    assert results[1].rank_score == 50 + 65
    assert results[2].rank_score == 50


def test_fetch_snapshots_collects_errors(monkeypatch):
    def _fake_snapshot(symbol, market_data=None):
        if symbol == "XXXX":
            raise MarketDataError(symbol)
        return _snapshot(symbol, 1000.0)

    monkeypatch.setattr("modules.portfolio_engine.get_stock_snapshot", _fake_snapshot)

    snapshots, errors = fetch_snapshots(["bbca", "XXXX", "TLKM", "BBCA", " "], max_workers=3)

    assert set(snapshots) == {"BBCA", "TLKM"}
    assert errors == {"XXXX": "Insufficient or unavailable market data for XXXX"}


def test_fetch_snapshots_empty():
    assert fetch_snapshots([]) == ({}, {})


def test_fetch_snapshots_keys_by_bare_code(monkeypatch):
    requested = []

    def _fake_snapshot(symbol, market_data=None):
        requested.append(symbol)
        return _snapshot(symbol, 1000.0)

    monkeypatch.setattr("modules.portfolio_engine.get_stock_snapshot", _fake_snapshot)

    snapshots, errors = fetch_snapshots(["bbca.jk", "BBCA", "★tlkm"])

    assert sorted(requested) == ["BBCA", "TLKM"]
    assert set(snapshots) == {"BBCA", "TLKM"}
    assert errors == {}


def test_fetch_snapshots_unexpected_failure_stays_per_symbol(monkeypatch):
    def _fake_snapshot(symbol, market_data=None):
        if symbol == "GOTO":
            raise ValueError("bad frame")
        return _snapshot(symbol, 1000.0)

    monkeypatch.setattr("modules.portfolio_engine.get_stock_snapshot", _fake_snapshot)

    snapshots, errors = fetch_snapshots(["BBCA", "GOTO"])

    assert set(snapshots) == {"BBCA"}
    assert errors == {"GOTO": "Analysis failed for GOTO: bad frame"}
