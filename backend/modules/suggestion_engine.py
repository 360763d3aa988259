"""
Suggestion Engine.

Turns indicators + bandarmology flow + position P/L into one discrete action.
Warning flags are collected independently; the action itself comes from an
ordered rule table evaluated top-to-bottom, first match wins.
"""
import logging
from typing import Callable, Dict, List, NamedTuple, Optional

from modules.portfolio_models import StockSnapshot, Suggestion, UserSettings

logger = logging.getLogger(__name__)

TREND_ARROWS = {"UP": "↑", "DOWN": "↓", "SIDEWAYS": "→"}


class SuggestionRule(NamedTuple):
    name: str
    predicate: Callable[[Dict], bool]
    action: str
    urgency: str
    reason: Callable[[Dict], str]


def _label(value: str) -> str:
    # Only the first underscore is replaced, e.g. "STRONG ACCUMULATION", "DISTRIBUTION CEILING"
    return value.replace("_", " ", 1)


def overbought_rsi_threshold(settings: UserSettings) -> float:
    """The only risk-tolerance-sensitive threshold."""
    return 70 if settings.risk_tolerance == "CONSERVATIVE" else 80


SUGGESTION_RULES: List[SuggestionRule] = [
    SuggestionRule(
        "strong_distribution",
        lambda c: c["status"] == "STRONG_DISTRIBUTION",
        "SELL", "IMMEDIATE",
        lambda c: f"STRONG DISTRIBUTION detected (Score: {c['score']}). Exit immediately!",
    ),
    SuggestionRule(
        "distribution_with_loss",
        lambda c: c["status"] == "DISTRIBUTION" and c["pl"] < 0,
        "REDUCE", "SOON",
        lambda c: f"Distribution + Floating Loss ({c['pl']:.1f}%). Reduce position.",
    ),
    SuggestionRule(
        "hard_stop_loss",
        lambda c: c["pl"] <= -c["settings"].stop_loss_target,
        "SELL", "IMMEDIATE",
        lambda c: f"Stop Loss hit ({c['pl']:.1f}%). Cut loss now!",
    ),
    SuggestionRule(
        "take_profit_target",
        lambda c: c["pl"] >= c["settings"].take_profit_target,
        "TAKE_PROFIT", "IMMEDIATE",
        lambda c: f"TARGET HIT! Profit +{c['pl']:.1f}%. Time to take profits!",
    ),
    SuggestionRule(
        "take_profit_tp1",
        lambda c: c["pl"] >= c["settings"].take_profit_target * 0.5 and c["pl"] > 0,
        "TAKE_PROFIT", "SOON",
        lambda c: f"TP1 reached (+{c['pl']:.1f}%). Consider selling a portion.",
    ),
    SuggestionRule(
        "overbought_near_resistance",
        lambda c: c["rsi"] >= overbought_rsi_threshold(c["settings"]) and c["price_position"] > 85,
        "TAKE_PROFIT", "SOON",
        lambda c: f"RSI Overbought ({c['rsi']:.0f}) + Near resistance. Consider selling.",
    ),
    SuggestionRule(
        "distribution_ceiling_profit",
        lambda c: c["pattern"] == "DISTRIBUTION_CEILING" and c["pl"] > 5,
        "TAKE_PROFIT", "WATCH",
        lambda c: "Distribution ceiling pattern - take profits before reversal.",
    ),
    SuggestionRule(
        "strong_accumulation",
        lambda c: c["status"] == "STRONG_ACCUMULATION" and c["trend"] != "DOWN",
        "STRONG_BUY", "SOON",
        lambda c: f"STRONG ACCUMULATION (Score: {c['score']}). Smart money buying!",
    ),
    SuggestionRule(
        "accumulation_near_ma20",
        lambda c: c["status"] == "ACCUMULATION" and c["rsi"] < 60 and c["price"] <= c["ma20"] * 1.03,
        "BUY", "WATCH",
        lambda c: "Accumulation + Near MA20 support. Good entry.",
    ),
    SuggestionRule(
        "shakeout",
        lambda c: c["pattern"] == "SHAKEOUT",
        "STRONG_BUY", "SOON",
        lambda c: "Shakeout recovery! Classic institutional shake - buy the dip.",
    ),
    SuggestionRule(
        "breakout",
        lambda c: c["pattern"] == "BREAKOUT",
        "BUY", "SOON",
        lambda c: "Volume breakout confirmed! Bullish momentum.",
    ),
    SuggestionRule(
        "danger_with_profit",
        lambda c: c["warning_level"] == "DANGER" and c["pl"] > 0,
        "REDUCE", "SOON",
        lambda c: "Warning level DANGER with profit. Secure some gains.",
    ),
]

FALLBACK_RULE = SuggestionRule(
    "hold", lambda c: True, "HOLD", "NONE", lambda c: "Waiting for clearer signal.",
)


def match_rule(ctx: Dict, rules: Optional[List[SuggestionRule]] = None) -> SuggestionRule:
    """First rule whose predicate holds, or the HOLD fallback."""
    for rule in rules if rules is not None else SUGGESTION_RULES:
        if rule.predicate(ctx):
            return rule
    return FALLBACK_RULE


def collect_warning_flags(ctx: Dict) -> List[str]:
    flags = []

    if ctx["warning_level"] == "DANGER":
        flags.append("DANGER: Strong institutional distribution detected!")
    elif ctx["warning_level"] == "CAUTION":
        flags.append("WARNING: Distribution signals detected")

    if ctx["status"] in ("DISTRIBUTION", "STRONG_DISTRIBUTION"):
        flags.append(f"Bandarmology: {_label(ctx['status'])}")

    if ctx["pattern"] == "DISTRIBUTION_CEILING":
        flags.append("Pattern: Price failing at resistance")

    if ctx["rsi"] > 75:
        flags.append(f"RSI Overbought ({ctx['rsi']:.0f})")

    if ctx["trend"] == "DOWN" and ctx["price"] < ctx["ma20"]:
        flags.append("Downtrend: Price below MA20")

    selling = next((s for s in ctx["signals"] if s.name == "Selling Momentum"), None)
    if selling is not None:
        flags.append(selling.description)

    return flags


def build_analysis_summary(ctx: Dict) -> str:
    parts = [
        f"Trend: {TREND_ARROWS.get(ctx['trend'], '→')} {ctx['trend']}",
        f"Bandarmology: {ctx['score']}/100 ({_label(ctx['status'])})",
        f"RSI: {ctx['rsi']:.0f}",
    ]
    if ctx["pattern"]:
        parts.append(f"Pattern: {_label(ctx['pattern'])}")
    return " | ".join(parts)


def is_near_exit(price: float, avg_price: float, pl_percent: float, settings: UserSettings) -> bool:
    """Within 10% above the hard-stop trigger, or at 90% of the profit target."""
    if pl_percent >= settings.take_profit_target * 0.9:
        return True
    if avg_price <= 0:
        return False
    stop_trigger = avg_price * (1 - settings.stop_loss_target / 100)
    return price <= stop_trigger * 1.1


def generate_suggestion(
    snapshot: Optional[StockSnapshot],
    avg_price: float,
    pl_percent: float,
    settings: UserSettings,
) -> Suggestion:
    """
    Decide the action for one (position, market snapshot) pair.

    Args:
        snapshot: Market view of the symbol; None or missing analyses yield HOLD/NONE
        avg_price: Average buy price of the position (0 for a prospective entry)
        pl_percent: Unrealized P/L percent of the position
        settings: User risk settings

    Returns:
        Suggestion
    """
    if snapshot is None or snapshot.indicators is None or snapshot.flow is None:
        return Suggestion()

    ind = snapshot.indicators
    flow = snapshot.flow
    ctx = {
        "settings": settings,
        "pl": pl_percent,
        "price": snapshot.current_price,
        "rsi": ind.rsi,
        "ma20": ind.ma20,
        "trend": ind.trend,
        "price_position": ind.price_position,
        "score": flow.score,
        "status": flow.status,
        "pattern": flow.pattern,
        "warning_level": flow.warning_level,
        "signals": flow.signals,
    }

    rule = match_rule(ctx)
    logger.debug(f"[{snapshot.symbol}] Suggestion rule matched: {rule.name}")

    return Suggestion(
        action=rule.action,
        urgency=rule.urgency,
        reason=rule.reason(ctx),
        analysis_summary=build_analysis_summary(ctx),
        warning_flags=collect_warning_flags(ctx),
        is_near_exit=is_near_exit(snapshot.current_price, avg_price, pl_percent, settings),
        trend=ind.trend,
        flow_score=flow.score,
        flow_status=_label(flow.status),
    )
