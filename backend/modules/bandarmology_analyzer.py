"""
Bandarmology Analyzer Module

Infers institutional ("bandar") activity from daily price-volume behaviour.
A fixed battery of divergence heuristics is evaluated against the series;
each check that fires adds a signed weight to a neutral base score of 50.
The clamped score is bucketed into a status, and the strongest recognisable
pattern (absorption, distribution ceiling, shakeout, breakout, markup) is
reported together with an early-warning level.
"""
import logging
from typing import Callable, Dict, List, Optional

import numpy as np

import config
from modules.portfolio_models import FlowAnalysis, FlowSignal, PriceSeries

logger = logging.getLogger(__name__)

BASE_SCORE = 50

STATUS_LABELS = {
    'STRONG_ACCUMULATION': 'BANDAR AKUMULASI KUAT',
    'ACCUMULATION': 'Akumulasi',
    'NEUTRAL': 'Netral',
    'DISTRIBUTION': 'Distribusi',
    'STRONG_DISTRIBUTION': 'BANDAR DISTRIBUSI KUAT',
}

PATTERN_LABELS = {
    'ABSORPTION': 'Pola Absorpsi - Bandar sedang collect',
    'MARKUP': 'Fase Markup - Bandar dorong harga naik',
    'DISTRIBUTION_CEILING': 'Ceiling Distribution - Bandar jualan di resistance',
    'SHAKEOUT': 'Shakeout - Bandar goyang retail',
    'BREAKOUT': 'Breakout dengan Volume',
}


def _average(values) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def _pct_change(current: float, previous: float) -> float:
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def _run_length(flags: List[bool], max_days: int) -> int:
    """Backward run of True values ending at the last element, capped at max_days."""
    count = 0
    for flag in reversed(flags[-max_days:]):
        if not flag:
            break
        count += 1
    return count


def _signal(kind: str, name: str, description: str, weight: int) -> FlowSignal:
    return FlowSignal(kind=kind, name=name, description=description, weight=weight)


def neutral_flow_analysis() -> FlowAnalysis:
    """Default result for series too short to judge."""
    return FlowAnalysis(
        score=BASE_SCORE,
        status='NEUTRAL',
        signals=[],
        confidence='LOW',
        pattern=None,
        days_since_pattern_start=0,
        warning_level='SAFE',
    )


class BandarmologyAnalyzer:
    """
    Price-volume bandarmology scoring engine.

    Stateless: every call to `analyze` works only on the series it is given,
    so one instance can serve many symbols concurrently.
    """

    def __init__(self):
        # Evaluation order matters only for the order of the signal list
        self.checks: List[Callable[[Dict], Optional[FlowSignal]]] = [
            self._check_absorption,
            self._check_silent_accumulation,
            self._check_weak_rally,
            self._check_distribution_ceiling,
            self._check_shakeout,
            self._check_volume_confirmed_uptrend,
            self._check_distribution_downtrend,
            self._check_volume_breakout,
            self._check_volume_breakdown,
            self._check_momentum_building,
            self._check_selling_momentum,
            self._check_overbought_dry_volume,
            self._check_volume_anomaly,
        ]

    def analyze(self, series: PriceSeries) -> FlowAnalysis:
        """
        Run the full heuristic battery on a cleaned series.

        Returns:
            FlowAnalysis; the neutral default when fewer than MIN_BARS bars exist.
        """
        if len(series) < config.MIN_BARS:
            return neutral_flow_analysis()

        ctx = self._build_context(series)

        signals: List[FlowSignal] = []
        total_score = BASE_SCORE
        for check in self.checks:
            signal = check(ctx)
            if signal is not None:
                signals.append(signal)
                total_score += signal.weight

        total_score = max(0, min(100, total_score))

        pattern, days = self._detect_pattern(signals, ctx)
        status = self._classify_status(total_score)
        warning_level = self._warning_level(status, signals)
        confidence = self._confidence(signals)

        logger.debug(f"Flow score {total_score} ({status}), pattern={pattern}, signals={len(signals)}")

        return FlowAnalysis(
            score=int(round(total_score)),
            status=status,
            signals=signals,
            confidence=confidence,
            pattern=pattern,
            days_since_pattern_start=days,
            warning_level=warning_level,
        )

    # ==================== CONTEXT ====================

    @staticmethod
    def _build_context(series: PriceSeries) -> Dict:
        prices = list(series.closes)
        volumes = list(series.volumes)
        n = len(prices)

        current_price = prices[-1]
        current_volume = volumes[-1]

        avg_volume20 = _average(volumes[-20:])
        avg_volume5 = _average(volumes[-5:])

        resistance20 = max(series.highs[-20:-1])
        support20 = min(series.lows[-20:-1])

        # Three independent runs over the last 5 bars; they need not cover the same days
        recent = range(max(0, n - 5), n)
        green = [series.closes[i] > series.opens[i] for i in recent]
        red = [series.closes[i] < series.opens[i] for i in recent]
        high_volume = [volumes[i] > avg_volume20 * 1.3 for i in recent]

        return {
            'series': series,
            'prices': prices,
            'volumes': volumes,
            'len': n,
            'current_price': current_price,
            'avg_volume20': avg_volume20,
            'avg_price20': _average(prices[-20:]),
            'price_change_1d': _pct_change(current_price, prices[-2]),
            'price_change_5d': _pct_change(current_price, prices[-6]),
            'price_change_20d': _pct_change(current_price, prices[-21]) if n >= 21 else 0.0,
            'volume_ratio': current_volume / avg_volume20 if avg_volume20 > 0 else 0.0,
            'volume_ratio_5d': avg_volume5 / avg_volume20 if avg_volume20 > 0 else 0.0,
            'resistance20': resistance20,
            'support20': support20,
            'consecutive_up': _run_length(green, 5),
            'consecutive_down': _run_length(red, 5),
            'consecutive_high_volume': _run_length(high_volume, 5),
        }

    # ==================== VOLUME-PRICE DIVERGENCE ====================

    @staticmethod
    def _check_absorption(ctx: Dict) -> Optional[FlowSignal]:
        change = ctx['price_change_5d']
        ratio = ctx['volume_ratio_5d']
        if -8 < change < -2 and ratio > 1.5:
            return _signal(
                'BULLISH', 'Absorption Pattern',
                f"Price dropped {change:.1f}% but volume {ratio * 100 - 100:.0f}% above average. "
                f"Bandar mungkin sedang akumulasi.",
                15,
            )
        return None

    @staticmethod
    def _check_silent_accumulation(ctx: Dict) -> Optional[FlowSignal]:
        if abs(ctx['price_change_5d']) < 3 and ctx['volume_ratio_5d'] > 2:
            return _signal(
                'BULLISH', 'Silent Accumulation',
                "Price stable but volume 2x+ average. Smart money collecting quietly.",
                12,
            )
        return None

    @staticmethod
    def _check_weak_rally(ctx: Dict) -> Optional[FlowSignal]:
        change = ctx['price_change_5d']
        if change > 3 and ctx['volume_ratio_5d'] < 0.7:
            return _signal(
                'BEARISH', 'Weak Rally',
                f"Price up {change:.1f}% but volume below average. Rally tidak didukung volume.",
                -10,
            )
        return None

    # ==================== DISTRIBUTION ====================

    @staticmethod
    def _check_distribution_ceiling(ctx: Dict) -> Optional[FlowSignal]:
        recent_highs = ctx['series'].highs[-10:]
        max_recent = max(recent_highs)
        hits = sum(1 for h in recent_highs if h >= max_recent * 0.98)
        if hits >= 3 and ctx['volume_ratio_5d'] > 1.3:
            return _signal(
                'BEARISH', 'Distribution Ceiling',
                f"Price tested resistance {hits}x with high volume. Bandar mungkin distribusi.",
                -18,
            )
        return None

    # ==================== SHAKEOUT ====================

    @staticmethod
    def _check_shakeout(ctx: Dict) -> Optional[FlowSignal]:
        prices = ctx['prices']
        volumes = ctx['volumes']
        n = ctx['len']
        for i in range(n - 3, n - 1):
            if i < 1:
                continue
            day_drop = _pct_change(prices[i], prices[i - 1])
            recovery = _pct_change(ctx['current_price'], prices[i])
            if day_drop < -4 and recovery > 3 and volumes[i] > ctx['avg_volume20'] * 2:
                return _signal(
                    'BULLISH', 'Shakeout Recovery',
                    f"Sharp {day_drop:.1f}% drop on huge volume, recovered {recovery:.1f}%. "
                    f"Classic bandar shakeout.",
                    20,
                )
        return None

    # ==================== TREND STRENGTH ====================

    @staticmethod
    def _check_volume_confirmed_uptrend(ctx: Dict) -> Optional[FlowSignal]:
        change = ctx['price_change_20d']
        if change > 10 and ctx['current_price'] > ctx['avg_price20'] and ctx['volume_ratio_5d'] > 1.2:
            return _signal(
                'BULLISH', 'Volume-Confirmed Uptrend',
                f"+{change:.1f}% in 20 days with strong volume. Trend healthy.",
                10,
            )
        return None

    @staticmethod
    def _check_distribution_downtrend(ctx: Dict) -> Optional[FlowSignal]:
        change = ctx['price_change_20d']
        if change < -10 and ctx['volume_ratio_5d'] > 1.5:
            return _signal(
                'BEARISH', 'Distribution Downtrend',
                f"{change:.1f}% drop with high volume. Active selling pressure.",
                -15,
            )
        return None

    # ==================== BREAKOUT ====================

    @staticmethod
    def _check_volume_breakout(ctx: Dict) -> Optional[FlowSignal]:
        resistance = ctx['resistance20']
        ratio = ctx['volume_ratio']
        if ctx['current_price'] > resistance and ratio > 2:
            return _signal(
                'BULLISH', 'Volume Breakout',
                f"Broke above Rp{resistance:,.0f} on {ratio:.1f}x volume!",
                18,
            )
        return None

    @staticmethod
    def _check_volume_breakdown(ctx: Dict) -> Optional[FlowSignal]:
        support = ctx['support20']
        if ctx['current_price'] < support and ctx['volume_ratio'] > 1.5:
            return _signal(
                'BEARISH', 'Volume Breakdown',
                f"Broke below support Rp{support:,.0f} on high volume.",
                -20,
            )
        return None

    # ==================== CONSECUTIVE DAYS ====================

    @staticmethod
    def _check_momentum_building(ctx: Dict) -> Optional[FlowSignal]:
        up = ctx['consecutive_up']
        if up >= 3 and ctx['consecutive_high_volume'] >= 2:
            return _signal(
                'BULLISH', 'Momentum Building',
                f"{up} hari hijau berturut-turut dengan volume tinggi.",
                8,
            )
        return None

    @staticmethod
    def _check_selling_momentum(ctx: Dict) -> Optional[FlowSignal]:
        down = ctx['consecutive_down']
        if down >= 3 and ctx['consecutive_high_volume'] >= 2:
            return _signal(
                'BEARISH', 'Selling Momentum',
                f"{down} hari merah berturut-turut dengan volume tinggi.",
                -12,
            )
        return None

    # ==================== WARNINGS ====================

    @staticmethod
    def _check_overbought_dry_volume(ctx: Dict) -> Optional[FlowSignal]:
        support = ctx['support20']
        resistance = ctx['resistance20']
        price = ctx['current_price']
        price_range = resistance - support
        if price_range > 0:
            position = (price - support) / price_range * 100
        else:
            position = 100.0 if price > resistance else 0.0

        if position > 90 and ctx['volume_ratio_5d'] < 1:
            return _signal(
                'WARNING', 'Overbought + Volume Dry',
                "Price near top of range but volume drying up. Potensi reversal.",
                -8,
            )
        return None

    @staticmethod
    def _check_volume_anomaly(ctx: Dict) -> Optional[FlowSignal]:
        if ctx['volume_ratio'] > 3 and abs(ctx['price_change_1d']) < 1:
            return _signal(
                'WARNING', 'Volume Anomaly',
                "3x+ volume spike without price movement. Watch for direction.",
                0,
            )
        return None

    # ==================== CLASSIFICATION ====================

    def _detect_pattern(self, signals: List[FlowSignal], ctx: Dict):
        names = {s.name for s in signals}

        if 'Absorption Pattern' in names or 'Silent Accumulation' in names:
            return 'ABSORPTION', self._count_pattern_days(ctx, 'absorption')
        if 'Distribution Ceiling' in names:
            return 'DISTRIBUTION_CEILING', self._count_pattern_days(ctx, 'distribution')
        if 'Shakeout Recovery' in names:
            return 'SHAKEOUT', 2
        if 'Volume Breakout' in names:
            return 'BREAKOUT', 1
        if 'Volume-Confirmed Uptrend' in names:
            return 'MARKUP', self._count_pattern_days(ctx, 'markup')
        return None, 0

    @staticmethod
    def _count_pattern_days(ctx: Dict, pattern: str) -> int:
        """Count recent days (max 10) matching the pattern's daily volume/price test."""
        prices = ctx['prices']
        volumes = ctx['volumes']
        n = ctx['len']
        avg_vol = ctx['avg_volume20']

        count = 0
        for i in range(n - 1, max(0, n - 10) - 1, -1):
            vol = volumes[i]
            change = _pct_change(prices[i], prices[i - 1]) if i > 0 else 0.0

            if pattern == 'absorption':
                matched = vol > avg_vol * 1.3 and -3 < change < 2
            elif pattern == 'distribution':
                matched = vol > avg_vol * 1.2 and change < 1
            elif pattern == 'markup':
                matched = vol > avg_vol and change > 0
            else:
                matched = False

            if not matched:
                break
            count += 1

        return count

    @staticmethod
    def _classify_status(score: float) -> str:
        if score >= 75:
            return 'STRONG_ACCUMULATION'
        if score >= 60:
            return 'ACCUMULATION'
        if score >= 40:
            return 'NEUTRAL'
        if score >= 25:
            return 'DISTRIBUTION'
        return 'STRONG_DISTRIBUTION'

    @staticmethod
    def _warning_level(status: str, signals: List[FlowSignal]) -> str:
        if status == 'STRONG_DISTRIBUTION':
            return 'DANGER'
        if status == 'DISTRIBUTION' or any(s.kind == 'WARNING' for s in signals):
            return 'CAUTION'
        return 'SAFE'

    @staticmethod
    def _confidence(signals: List[FlowSignal]) -> str:
        bullish = sum(1 for s in signals if s.kind == 'BULLISH')
        bearish = sum(1 for s in signals if s.kind == 'BEARISH')
        if len(signals) >= 3 and abs(bullish - bearish) >= 2:
            return 'HIGH'
        if len(signals) >= 2:
            return 'MEDIUM'
        return 'LOW'


def get_bandarmology_summary(analysis: FlowAnalysis) -> str:
    """Human-readable multi-line summary of a flow analysis."""
    summary = f"{STATUS_LABELS[analysis.status]} (Score: {analysis.score}/100)"

    if analysis.pattern:
        summary += f"\nPattern: {PATTERN_LABELS[analysis.pattern]}"

    if analysis.warning_level == 'DANGER':
        summary += "\nWARNING: High risk of further decline!"
    elif analysis.warning_level == 'CAUTION':
        summary += "\nCAUTION: Monitor closely"

    return summary
