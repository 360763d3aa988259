import pytest

from modules.portfolio_models import FlowAnalysis, Indicators, StockSnapshot, UserSettings
from modules.trading_plan import (
    build_sell_strategy,
    calculate_stop_loss,
    generate_trading_plan,
)


def _settings(**overrides):
    data = {
        "total_capital": 100_000_000,
        "max_allocation_per_stock": 15,
        "risk_tolerance": "MODERATE",
        "take_profit_target": 20,
        "stop_loss_target": 7,
    }
    data.update(overrides)
    return UserSettings(**data)


def _snapshot(price, indicators=None, flow=None):
    ind = {
        "rsi": 50.0, "ma5": price, "ma20": price, "ma60": price, "atr": 0.0,
        "volume_change_percent": 0.0, "trend": "SIDEWAYS", "volume_flow": "NEUTRAL",
        "support": 0.0, "resistance": 0.0, "price_position": 50.0,
    }
    ind.update(indicators or {})
    return StockSnapshot(
        symbol="TLKM",
        current_price=price,
        indicators=Indicators(**ind),
        flow=FlowAnalysis(**(flow or {})),
    )


def test_default_plan_without_analysis():
    plan = generate_trading_plan(None, 10, 1000.0, 0.0, _settings(), 50_000_000)

    assert plan.position_health == "WARNING"
    assert plan.stop_loss.price == 0
    assert plan.take_profit1.reason == "N/A"
    assert plan.add_zones == []
    assert plan.sell_strategy == []
    assert plan.immediate_action == "Data not available"
    assert plan.short_term_plan == "Waiting for data"


def test_stop_loss_prefers_support():
    stop = calculate_stop_loss(1100.0, 1000.0, support=1000.0, atr=100.0, settings=_settings())

    assert stop.price == 980
    assert stop.reason == "Support level at 1000"
    assert stop.percent_from_current == pytest.approx((980 - 1100) / 1100 * 100)


def test_stop_loss_atr_candidate():
    stop = calculate_stop_loss(1100.0, 1000.0, support=0.0, atr=50.0, settings=_settings())

    assert stop.price == 1000
    assert stop.reason == "2x ATR from current price"


def test_stop_loss_capped_five_percent_below_current():
    stop = calculate_stop_loss(1000.0, 1000.0, support=990.0, atr=5.0, settings=_settings())

    assert stop.price == 950
    assert stop.reason == "7% from buy price"
    assert stop.percent_from_current == pytest.approx(-5.0)


@pytest.mark.parametrize("price,avg,support,atr", [
    (1000.0, 1000.0, 990.0, 5.0),
    (1000.0, 2000.0, 1500.0, 10.0),
    (137.0, 120.0, 133.0, 1.0),
    (8.0, 9.0, 7.9, 0.1),
    (5250.0, 4100.0, 0.0, 80.0),
])
def test_stop_loss_never_above_cap(price, avg, support, atr):
    settings = _settings()
    stop = calculate_stop_loss(price, avg, support=support, atr=atr, settings=settings)

    percent_stop = avg * (1 - settings.stop_loss_target / 100)
    technical_stop = support * 0.98 if support > 0 else percent_stop
    candidates_max = max(percent_stop, technical_stop, price - 2 * atr)

    assert stop.price <= price * 0.95
    assert stop.price <= candidates_max + 0.5


def test_take_profits_use_resistance_and_average_price():
    snapshot = _snapshot(1000.0, indicators={"resistance": 1030.0})

    plan = generate_trading_plan(snapshot, 10, 950.0, 5.26, _settings(), 50_000_000)

    assert plan.take_profit1.price == 1030
    assert plan.take_profit1.reason == "Near resistance at 1030"
    assert plan.take_profit2.price == 1140
    assert plan.take_profit2.reason == "Primary target 20%"
    assert plan.take_profit3.price == 1178
    assert plan.stop_loss.price == 950
    assert plan.max_downside == pytest.approx(5.0)
    assert plan.max_upside == pytest.approx(14.0)
    assert plan.risk_reward_ratio == pytest.approx(2.8)


def test_take_profits_always_above_current_price():
    # Price already far above every average-price target
    snapshot = _snapshot(2000.0, flow={"score": 80, "status": "STRONG_ACCUMULATION"})

    plan = generate_trading_plan(snapshot, 10, 1000.0, 100.0, _settings(), 0)

    assert plan.take_profit1.price == 2020
    assert plan.take_profit2.price == 2100
    assert plan.take_profit3.price == 2200
    assert plan.take_profit1.reason == "First target (1.0%)"
    for level in (plan.take_profit1, plan.take_profit2, plan.take_profit3):
        assert level.price > 2000


def test_take_profits_above_current_for_low_priced_stock():
    snapshot = _snapshot(10.0)

    plan = generate_trading_plan(snapshot, 10, 10.0, 0.0, _settings(), 0)

    for level in (plan.take_profit1, plan.take_profit2, plan.take_profit3):
        assert level.price > 10.0


@pytest.mark.parametrize("total_lots", list(range(1, 13)) + [37, 100])
def test_scale_out_lots_sum_to_position(total_lots):
    snapshot = _snapshot(1000.0)

    plan = generate_trading_plan(snapshot, total_lots, 1000.0, 0.0, _settings(), 0)

    assert plan.position_health == "GOOD"
    steps = plan.sell_strategy
    assert steps[-1].lots_to_sell == "ALL"
    assert steps[-1].trigger_condition.startswith("STOP LOSS")
    assert sum(s.lots_to_sell for s in steps[:-1]) == total_lots
    assert all(s.lots_to_sell > 0 for s in steps[:-1])


def test_scale_out_split_for_ten_lots():
    snapshot = _snapshot(1000.0)

    plan = generate_trading_plan(snapshot, 10, 1000.0, 0.0, _settings(), 0)

    assert [s.lots_to_sell for s in plan.sell_strategy] == [3, 4, 3, "ALL"]
    assert [s.percent_of_position for s in plan.sell_strategy] == [30, 40, 30, 100]


def test_danger_plan_exits_everything():
    snapshot = _snapshot(1000.0)

    plan = generate_trading_plan(snapshot, 10, 1100.0, -9.09, _settings(), 0)

    assert plan.position_health == "DANGER"
    assert len(plan.sell_strategy) == 1
    assert plan.sell_strategy[0].lots_to_sell == "ALL"
    assert plan.immediate_action == "SELL ALL 10 lots now at 1000"


def test_warning_plan_sells_half_then_stops():
    snapshot = _snapshot(1000.0, flow={"score": 30, "status": "DISTRIBUTION", "warning_level": "CAUTION"})

    plan = generate_trading_plan(snapshot, 5, 980.0, 2.0, _settings(), 0)

    assert plan.position_health == "WARNING"
    first, second = plan.sell_strategy
    assert first.lots_to_sell == 3
    assert first.percent_of_position == 50
    assert second.lots_to_sell == "ALL"
    assert second.price == plan.stop_loss.price
    assert plan.immediate_action == "Consider selling 2 lots (40%) at 1000"
    assert plan.short_term_plan == f"Monitor closely. Stop loss at {plan.stop_loss.price:.0f}"


def test_add_zones_sized_from_allocation_headroom():
    snapshot = _snapshot(
        1000.0,
        indicators={"ma20": 960.0, "trend": "UP", "support": 900.0, "resistance": 1050.0, "rsi": 55.0},
        flow={"score": 80, "status": "STRONG_ACCUMULATION"},
    )

    plan = generate_trading_plan(snapshot, 0, 1000.0, 0.0, _settings(), 50_000_000)

    zones = [(z.price, z.lots, z.priority) for z in plan.add_zones]
    assert zones == [
        (960, 46, "HIGH"),
        (900, 66, "HIGH"),
        (1000, 45, "HIGH"),
        (1071, 28, "MEDIUM"),
    ]
    assert plan.notes == "Add zones available: 960 (46 lots), 900 (66 lots), 1000 (45 lots), 1071 (28 lots)"


def test_no_add_zones_without_headroom():
    snapshot = _snapshot(
        1000.0,
        indicators={"ma20": 960.0, "trend": "UP", "support": 900.0, "resistance": 1050.0},
        flow={"score": 80, "status": "STRONG_ACCUMULATION"},
    )
    settings = _settings()

    full = generate_trading_plan(snapshot, 150, 1000.0, 0.0, settings, 50_000_000)
    no_cash = generate_trading_plan(snapshot, 0, 1000.0, 0.0, settings, 0)

    assert full.add_zones == []
    assert no_cash.add_zones == []


def test_excellent_plan_suggests_first_high_zone():
    snapshot = _snapshot(
        1000.0,
        indicators={"ma20": 960.0, "trend": "UP", "support": 900.0, "resistance": 1050.0},
        flow={"score": 80, "status": "STRONG_ACCUMULATION"},
    )

    plan = generate_trading_plan(snapshot, 10, 900.0, 11.1, _settings(), 50_000_000)

    assert plan.position_health == "EXCELLENT"
    assert plan.immediate_action == "Can add 43 lots at 960"
    assert plan.short_term_plan == (
        f"Target TP1: {plan.take_profit1.price:.0f}, TP2: {plan.take_profit2.price:.0f}"
    )


def test_sell_strategy_single_lot():
    snapshot = _snapshot(1000.0)
    plan = generate_trading_plan(snapshot, 1, 1000.0, 0.0, _settings(), 0)

    steps = build_sell_strategy("GOOD", 1, 1000.0, plan.stop_loss,
                                [plan.take_profit1, plan.take_profit2, plan.take_profit3])

    assert [s.lots_to_sell for s in steps] == [1, "ALL"]


def test_texts_print_whole_rupiah_for_high_priced_stock():
    settings = _settings()
    wide_atr = {"atr": 100_000.0}
    distribution = {"score": 30, "status": "DISTRIBUTION", "warning_level": "CAUTION"}

    good = generate_trading_plan(_snapshot(1_500_000.0, wide_atr), 10, 1_500_000.0, 0.0, settings, 0)
    warning = generate_trading_plan(
        _snapshot(1_500_000.0, wide_atr, distribution),
        10, 1_500_000.0, 0.0, settings, 0,
    )

    triggers = [s.trigger_condition for s in good.sell_strategy]
    assert triggers[0] == "TP1: Price reaches 1650000"
    assert triggers[-1] == "STOP LOSS: If drops to 1395000"
    assert warning.short_term_plan == "Monitor closely. Stop loss at 1395000"
    assert warning.sell_strategy[-1].trigger_condition == "If drops to 1395000"
    assert all("e+" not in t for t in triggers)
