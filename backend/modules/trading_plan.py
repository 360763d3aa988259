"""
Trading Plan Generator.

Builds the concrete, numeric plan for a position: health, stop loss,
three take-profit levels anchored on the average buy price, add zones
sized against allocation headroom, a sell ladder and the summary texts.
"""
import logging
import math
from typing import List, Optional

import config
from modules.portfolio_models import (
    AddZone,
    PriceLevel,
    SellStep,
    StockSnapshot,
    TradingPlan,
    UserSettings,
)

logger = logging.getLogger(__name__)

MAX_STOP_RATIO = 0.95
TP_FLOORS = (1.01, 1.05, 1.10)


def _round_price(value: float) -> int:
    """Half-up rounding to a whole rupiah."""
    return int(math.floor(value + 0.5))


def _pct_from(price: float, current_price: float) -> float:
    return (price - current_price) / current_price * 100


def _ceil_fraction(total: int, numerator: int, denominator: int) -> int:
    # Integer ceil(total * n / d); avoids 0.3 * 10 == 3.0000000000000004
    return -(-total * numerator // denominator)


# ==================== HEALTH ====================

def assess_position_health(status: str, score: int, warning_level: str,
                           pl_percent: float, settings: UserSettings) -> str:
    if status == "STRONG_DISTRIBUTION" or pl_percent <= -settings.stop_loss_target:
        return "DANGER"
    if status == "DISTRIBUTION" or warning_level == "DANGER" or pl_percent < -5:
        return "WARNING"
    if score >= 70 and pl_percent > 5:
        return "EXCELLENT"
    return "GOOD"


# ==================== LEVELS ====================

def calculate_stop_loss(current_price: float, avg_price: float, support: float,
                        atr: float, settings: UserSettings) -> PriceLevel:
    """
    Highest (most protective) of the percentage, technical and ATR stops,
    capped at 5% below the current price.
    """
    percent_stop = avg_price * (1 - settings.stop_loss_target / 100)
    technical_stop = support * 0.98 if support > 0 else percent_stop
    atr_stop = current_price - atr * 2

    cap = current_price * MAX_STOP_RATIO
    stop_value = min(max(percent_stop, technical_stop, atr_stop), cap)

    if stop_value == technical_stop:
        reason = f"Support level at {_round_price(support)}"
    elif stop_value == atr_stop:
        reason = "2x ATR from current price"
    else:
        reason = f"{settings.stop_loss_target:g}% from buy price"

    price = _round_price(stop_value)
    if price > cap:
        price = int(math.floor(cap))

    return PriceLevel(
        price=price,
        percent_from_current=_pct_from(stop_value, current_price),
        reason=reason,
    )


def _above_current(value: float, current_price: float) -> int:
    price = _round_price(value)
    if price <= current_price:
        price = int(math.floor(current_price)) + 1
    return price


def calculate_take_profits(current_price: float, avg_price: float, resistance: float,
                           score: int, settings: UserSettings) -> List[PriceLevel]:
    """
    TP1/TP2/TP3 from the average buy price; each forced strictly above
    the current price (+1% / +5% / +10% minimum).
    """
    target = settings.take_profit_target / 100
    tp1_target = avg_price * (1 + target * 0.5)
    tp2_target = avg_price * (1 + target)
    tp3_multiplier = 1.5 if score >= 70 else 1.2
    tp3_target = avg_price * (1 + target * tp3_multiplier)

    tp1 = tp1_target
    if current_price < resistance < tp1_target:
        tp1 = resistance
    tp1 = max(tp1, current_price * TP_FLOORS[0])
    tp2 = max(tp2_target, current_price * TP_FLOORS[1])
    tp3 = max(tp3_target, current_price * TP_FLOORS[2])

    tp1_pct = _pct_from(tp1, current_price)
    if resistance > current_price and tp1 >= resistance * 0.98:
        tp1_reason = f"Near resistance at {_round_price(resistance)}"
    else:
        tp1_reason = f"First target ({tp1_pct:.1f}%)"

    tp3_pct = _pct_from(tp3, current_price)

    return [
        PriceLevel(price=_above_current(tp1, current_price), percent_from_current=tp1_pct,
                   reason=tp1_reason),
        PriceLevel(price=_above_current(tp2, current_price),
                   percent_from_current=_pct_from(tp2, current_price),
                   reason=f"Primary target {settings.take_profit_target:g}%"),
        PriceLevel(price=_above_current(tp3, current_price), percent_from_current=tp3_pct,
                   reason=f"Extended target ({tp3_pct:.1f}%)"),
    ]


# ==================== ADD ZONES ====================

def _lots_for(amount: float, price: float) -> int:
    if price <= 0:
        return 0
    return int(math.floor(amount / (price * config.LOT_SIZE)))


def build_add_zones(snapshot: StockSnapshot, total_lots: int, settings: UserSettings,
                    available_capital: float) -> List[AddZone]:
    ind = snapshot.indicators
    flow = snapshot.flow
    current_price = snapshot.current_price

    max_allocation = settings.max_allocation_per_stock / 100 * settings.total_capital
    remaining = max_allocation - total_lots * config.LOT_SIZE * current_price
    if remaining <= 0 or available_capital <= 0:
        return []

    buyable = min(remaining, available_capital)
    score = flow.score
    zones = []

    if ind.trend == "UP" or score >= 60:
        ma20_price = _round_price(ind.ma20)
        lots = _lots_for(buyable * 0.3, ma20_price)
        if lots > 0 and ma20_price < current_price:
            zones.append(AddZone(price=ma20_price, lots=lots,
                                 reason="MA20 Support - add on pullback", priority="HIGH"))

    if 0 < ind.support < current_price * 0.95:
        support_price = _round_price(ind.support)
        lots = _lots_for(buyable * 0.4, support_price)
        if lots > 0:
            zones.append(AddZone(price=support_price, lots=lots,
                                 reason="Support level - strong buy zone",
                                 priority="HIGH" if score >= 60 else "MEDIUM"))

    if score >= 75:
        lots = _lots_for(buyable * 0.3, current_price)
        if lots > 0:
            zones.append(AddZone(price=_round_price(current_price), lots=lots,
                                 reason="Strong accumulation - entry now", priority="HIGH"))

    if flow.pattern == "BREAKOUT" or (score >= 70 and ind.rsi < 70):
        breakout_price = _round_price(ind.resistance * 1.02)
        lots = _lots_for(buyable * 0.2, breakout_price)
        if lots > 0:
            zones.append(AddZone(price=breakout_price, lots=lots,
                                 reason="Breakout confirmation - momentum buy", priority="MEDIUM"))

    return zones


# ==================== SELL LADDER ====================

def build_sell_strategy(health: str, total_lots: int, current_price: float,
                        stop_loss: PriceLevel, take_profits: List[PriceLevel]) -> List[SellStep]:
    now_price = _round_price(current_price)

    if health == "DANGER":
        return [SellStep(
            trigger_condition="IMMEDIATE - Danger condition",
            price=now_price,
            lots_to_sell="ALL",
            percent_of_position=100,
            reason="Cut loss / exit distribution",
        )]

    if health == "WARNING":
        return [
            SellStep(
                trigger_condition="Warning active - reduce exposure",
                price=now_price,
                lots_to_sell=_ceil_fraction(total_lots, 1, 2),
                percent_of_position=50,
                reason="Reduce risk - sell half position",
            ),
            SellStep(
                trigger_condition=f"If drops to {stop_loss.price:.0f}",
                price=stop_loss.price,
                lots_to_sell="ALL",
                percent_of_position=100,
                reason="Stop loss - sell remaining",
            ),
        ]

    # 30% / 40% / remainder, never more than held
    tp1_lots = min(_ceil_fraction(total_lots, 3, 10), total_lots)
    tp2_lots = min(_ceil_fraction(total_lots, 4, 10), total_lots - tp1_lots)
    tp3_lots = total_lots - tp1_lots - tp2_lots

    ladder = [
        (tp1_lots, take_profits[0], "TP1", 30, "Take partial profit - secure 30%"),
        (tp2_lots, take_profits[1], "TP2", 40, "Primary target - sell 40%"),
        (tp3_lots, take_profits[2], "TP3", 30, "Extended target - sell remaining"),
    ]
    steps = [
        SellStep(
            trigger_condition=f"{label}: Price reaches {level.price:.0f}",
            price=level.price,
            lots_to_sell=lots,
            percent_of_position=percent,
            reason=reason,
        )
        for lots, level, label, percent, reason in ladder
        if lots > 0
    ]
    steps.append(SellStep(
        trigger_condition=f"STOP LOSS: If drops to {stop_loss.price:.0f}",
        price=stop_loss.price,
        lots_to_sell="ALL",
        percent_of_position=100,
        reason="Cut loss - protect capital",
    ))
    return steps


# ==================== SUMMARY ====================

def _summary_texts(health: str, total_lots: int, current_price: float, support: float,
                   resistance: float, stop_loss: PriceLevel, take_profits: List[PriceLevel],
                   add_zones: List[AddZone]):
    now_price = _round_price(current_price)

    if health == "DANGER":
        return (
            f"SELL ALL {total_lots} lots now at {now_price}",
            "Exit this position. Wait for new trend confirmation before re-entry.",
            "Position in danger. Prioritize capital protection.",
        )

    if health == "WARNING":
        sell_portion = total_lots // 2
        share = sell_portion / total_lots * 100 if total_lots > 0 else 0
        return (
            f"Consider selling {sell_portion} lots ({share:.0f}%) at {now_price}",
            f"Monitor closely. Stop loss at {stop_loss.price:.0f}",
            "Warning signals detected. Reduce exposure and monitor.",
        )

    if health == "EXCELLENT":
        immediate = "HOLD - position healthy"
        if add_zones and add_zones[0].priority == "HIGH":
            immediate = f"Can add {add_zones[0].lots} lots at {add_zones[0].price:.0f}"
        return (
            immediate,
            f"Target TP1: {take_profits[0].price:.0f}, TP2: {take_profits[1].price:.0f}",
            "Position strong with positive bandarmology. Follow the plan.",
        )

    notes = ""
    if add_zones:
        notes = "Add zones available: " + ", ".join(
            f"{z.price:.0f} ({z.lots} lots)" for z in add_zones
        )
    return (
        "HOLD - wait for clearer signal",
        f"Watch support at {_round_price(support)}, resistance at {_round_price(resistance)}",
        notes,
    )


def generate_trading_plan(
    snapshot: Optional[StockSnapshot],
    total_lots: int,
    avg_price: float,
    pl_percent: float,
    settings: UserSettings,
    available_capital: float,
) -> TradingPlan:
    """
    Build the trading plan for one position (or prospective entry when total_lots is 0).

    Args:
        snapshot: Market view; None or missing analyses yield the default plan
        total_lots: Lots currently held
        avg_price: Average buy price
        pl_percent: Unrealized P/L percent
        settings: User risk settings
        available_capital: Portfolio-wide capital not yet deployed

    Returns:
        TradingPlan
    """
    if snapshot is None or snapshot.indicators is None or snapshot.flow is None:
        return TradingPlan()
    if snapshot.current_price <= 0:
        logger.warning(f"[{snapshot.symbol}] Non-positive current price, returning default plan")
        return TradingPlan()

    ind = snapshot.indicators
    flow = snapshot.flow
    current_price = snapshot.current_price

    health = assess_position_health(flow.status, flow.score, flow.warning_level, pl_percent, settings)
    stop_loss = calculate_stop_loss(current_price, avg_price, ind.support, ind.atr, settings)
    take_profits = calculate_take_profits(current_price, avg_price, ind.resistance, flow.score, settings)
    add_zones = build_add_zones(snapshot, total_lots, settings, available_capital)
    sell_strategy = build_sell_strategy(health, total_lots, current_price, stop_loss, take_profits)

    max_downside = abs(stop_loss.percent_from_current)
    max_upside = take_profits[1].percent_from_current
    risk_reward = max_upside / max_downside if max_downside > 0 else 0

    immediate, short_term, notes = _summary_texts(
        health, total_lots, current_price, ind.support, ind.resistance,
        stop_loss, take_profits, add_zones,
    )

    logger.debug(f"[{snapshot.symbol}] Plan health={health} stop={stop_loss.price} tp1={take_profits[0].price}")

    return TradingPlan(
        position_health=health,
        stop_loss=stop_loss,
        take_profit1=take_profits[0],
        take_profit2=take_profits[1],
        take_profit3=take_profits[2],
        add_zones=add_zones,
        sell_strategy=sell_strategy,
        risk_reward_ratio=round(risk_reward, 2),
        max_downside=round(max_downside, 2),
        max_upside=round(max_upside, 2),
        immediate_action=immediate,
        short_term_plan=short_term,
        notes=notes,
    )
