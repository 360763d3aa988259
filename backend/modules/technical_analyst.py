"""
Technical Analyst Module
Responsible for the indicator snapshot of a cleaned daily series.
- Moving Averages (MA5 / MA20 / MA60)
- RSI (Wilder smoothing) and ATR (simple mean of True Range)
- Trend classification
- Support/Resistance from Swing Highs/Lows
- Coarse volume flow (quick precursor of the bandarmology engine)
"""
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

import config
from modules.portfolio_models import Indicators, PriceSeries


def _average(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


class TechnicalAnalyst:

    @staticmethod
    def calculate_sma(closes: Sequence[float], period: int) -> float:
        """Mean of the last `period` closes; last close when the series is shorter."""
        if len(closes) == 0:
            return 0.0
        if len(closes) < period:
            return float(closes[-1])
        return _average(closes[-period:])

    @staticmethod
    def calculate_rsi(closes: Sequence[float], period: int = config.RSI_PERIOD) -> float:
        """
        Relative Strength Index with Wilder's smoothing.

        Seeds with the simple average gain/loss of the first `period` deltas,
        then smooths forward over the rest of the series. Neutral 50 when
        there are not enough points.
        """
        if len(closes) < period + 1:
            return 50.0

        deltas = np.diff(np.asarray(closes, dtype=float))
        gains = np.clip(deltas, 0, None)
        losses = np.clip(-deltas, 0, None)

        avg_gain = float(gains[:period].sum()) / period
        avg_loss = float(losses[:period].sum()) / period

        for gain, loss in zip(gains[period:], losses[period:]):
            avg_gain = (avg_gain * (period - 1) + float(gain)) / period
            avg_loss = (avg_loss * (period - 1) + float(loss)) / period

        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    @staticmethod
    def calculate_atr(
        highs: Sequence[float],
        lows: Sequence[float],
        closes: Sequence[float],
        period: int = config.ATR_PERIOD,
    ) -> float:
        """
        Calculate Average True Range (ATR) for volatility measurement.
        Simple mean of the last `period` true ranges (not RMA).
        """
        if len(closes) < period + 1:
            return 0.0

        df = pd.DataFrame({"high": highs, "low": lows, "close": closes}, dtype=float)
        prev_close = df["close"].shift()

        tr1 = df["high"] - df["low"]
        tr2 = (df["high"] - prev_close).abs()
        tr3 = (df["low"] - prev_close).abs()

        # First bar has no previous close
        tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).iloc[1:]
        atr = tr.tail(period).mean()

        return float(atr) if not pd.isna(atr) else 0.0

    @staticmethod
    def classify_trend(price: float, ma20: float, ma60: float) -> str:
        if price > ma20 and ma20 > ma60:
            return "UP"
        if price < ma20 and ma20 < ma60:
            return "DOWN"
        return "SIDEWAYS"

    @staticmethod
    def find_support_resistance(
        closes: Sequence[float],
        highs: Sequence[float],
        lows: Sequence[float],
        lookback: int = config.SR_LOOKBACK,
    ) -> Tuple[float, float]:
        """
        Identify nearest Support & Resistance using Swing Highs/Lows.

        A swing high is strictly higher than the two bars on each side,
        a swing low strictly lower. Resistance is the lowest swing high above
        the last close, support the highest swing low below it; the window
        extremes are used when no swing qualifies.

        Returns:
            (support, resistance)
        """
        n = len(closes)
        if n == 0:
            return 0.0, 0.0
        if n < config.MIN_BARS:
            return float(min(lows)), float(max(highs))

        window = min(lookback, n)
        recent_highs = list(highs[-window:])
        recent_lows = list(lows[-window:])
        current_price = float(closes[-1])

        swing_highs = []
        swing_lows = []
        for i in range(2, window - 2):
            h = recent_highs[i]
            if (h > recent_highs[i - 1] and h > recent_highs[i - 2]
                    and h > recent_highs[i + 1] and h > recent_highs[i + 2]):
                swing_highs.append(h)

            lo = recent_lows[i]
            if (lo < recent_lows[i - 1] and lo < recent_lows[i - 2]
                    and lo < recent_lows[i + 1] and lo < recent_lows[i + 2]):
                swing_lows.append(lo)

        above = [h for h in swing_highs if h > current_price]
        resistance = min(above) if above else max(recent_highs)

        below = [lo for lo in swing_lows if lo < current_price]
        support = max(below) if below else min(recent_lows)

        return float(support), float(resistance)

    @staticmethod
    def calculate_price_position(price: float, support: float, resistance: float) -> float:
        """Where price sits between support (0) and resistance (100)."""
        price_range = resistance - support
        if price_range <= 0:
            return 50.0
        position = (price - support) / price_range * 100
        return max(0.0, min(100.0, position))

    @staticmethod
    def classify_volume_flow(trend: str, is_green_day: bool, volume_change_pct: float) -> str:
        """Coarse flow label; the bandarmology engine gives the detailed picture."""
        if trend == "UP" and is_green_day and volume_change_pct > 10:
            return "ACCUMULATION"
        if trend == "DOWN" and not is_green_day and volume_change_pct > 10:
            return "DISTRIBUTION"
        if trend == "SIDEWAYS" and is_green_day and volume_change_pct > 30:
            return "ACCUMULATION"
        return "NEUTRAL"

    def compute_indicators(self, series: PriceSeries, current_price: Optional[float] = None) -> Indicators:
        """
        Build the full indicator snapshot for a cleaned series.

        Args:
            series: OHLCV bars, oldest first
            current_price: Live price if known, otherwise the last close

        Returns:
            Indicators
        """
        closes = series.closes
        last_close = float(closes[-1]) if closes else 0.0
        price = last_close if current_price is None else float(current_price)

        ma5 = self.calculate_sma(closes, 5)
        ma20 = self.calculate_sma(closes, 20)
        ma60 = self.calculate_sma(closes, 60)
        rsi = self.calculate_rsi(closes)
        atr = self.calculate_atr(series.highs, series.lows, closes)

        recent_volume = _average(series.volumes[-5:])
        avg_volume20 = _average(series.volumes[-20:])
        volume_change = ((recent_volume - avg_volume20) / avg_volume20 * 100) if avg_volume20 > 0 else 0.0

        trend = self.classify_trend(last_close, ma20, ma60)
        support, resistance = self.find_support_resistance(closes, series.highs, series.lows)
        price_position = self.calculate_price_position(price, support, resistance)

        is_green_day = bool(closes) and last_close > float(series.opens[-1])
        volume_flow = self.classify_volume_flow(trend, is_green_day, volume_change)

        return Indicators(
            rsi=rsi,
            ma5=ma5,
            ma20=ma20,
            ma60=ma60,
            atr=atr,
            volume_change_percent=volume_change,
            trend=trend,
            volume_flow=volume_flow,
            support=support,
            resistance=resistance,
            price_position=price_position,
        )
