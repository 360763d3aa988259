"""
Market Data Module
Responsible for fetching and cleaning daily OHLCV data for IDX symbols.
Uses yfinance for external data; every snapshot is computed fresh from
the cleaned series (no local cache).
"""
import logging

import pandas as pd
import yfinance as yf

import config
from modules.bandarmology_analyzer import BandarmologyAnalyzer
from modules.portfolio_models import PriceSeries, StockSnapshot, normalize_symbol
from modules.technical_analyst import TechnicalAnalyst

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]


class MarketDataError(Exception):
    """Insufficient or unavailable market data for a symbol."""

    def __init__(self, symbol: str, message: str = None):
        self.symbol = symbol
        self.message = message or f"Insufficient or unavailable market data for {symbol}"
        super().__init__(self.message)


def to_yahoo_ticker(ticker: str) -> str:
    clean = ticker.replace('★', '').replace('⭐', '').strip().upper()
    if '.' in clean:
        return clean  # already a full ticker (e.g. BRMS.JK)
    return f"{clean}{config.TICKER_SUFFIX}"


def clean_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a yfinance frame into lowercase open/high/low/close/volume columns.

    Rows without a close or a volume are dropped; a missing high, low or
    open falls back to that row's close.
    """
    if df is None or df.empty:
        return pd.DataFrame(columns=OHLCV_COLUMNS)

    df = df.copy()
    # Handle MultiIndex columns (common in new yfinance)
    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
    df.columns = [str(c).lower() for c in df.columns]
    df = df.loc[:, ~df.columns.duplicated()]

    missing = [c for c in ("close", "volume") if c not in df.columns]
    if missing:
        logger.warning(f"OHLCV frame missing columns: {missing}")
        return pd.DataFrame(columns=OHLCV_COLUMNS)

    df = df.dropna(subset=["close", "volume"])
    for col in ("open", "high", "low"):
        if col not in df.columns:
            df[col] = df["close"]
        else:
            df[col] = df[col].fillna(df["close"])

    return df[OHLCV_COLUMNS].astype(float)


class MarketData:
    def __init__(self, period: str = None, interval: str = None):
        self.period = period or config.HISTORY_PERIOD
        self.interval = interval or config.HISTORY_INTERVAL

    def fetch_ohlcv(self, ticker: str) -> pd.DataFrame:
        """Download and clean daily bars; raises MarketDataError on fetch failure."""
        yf_ticker = to_yahoo_ticker(ticker)
        try:
            raw = yf.download(
                yf_ticker,
                period=self.period,
                interval=self.interval,
                progress=False,
                auto_adjust=False,
            )
        except Exception as e:
            logger.error(f"Error fetching yfinance for {yf_ticker}: {e}")
            raise MarketDataError(normalize_symbol(ticker)) from e

        return clean_ohlcv(raw)

    def get_price_series(self, ticker: str) -> PriceSeries:
        symbol = normalize_symbol(ticker)
        df = self.fetch_ohlcv(ticker)
        if len(df) < config.MIN_BARS:
            logger.warning(f"[{symbol}] Only {len(df)} clean bars, need {config.MIN_BARS}")
            raise MarketDataError(symbol)
        return PriceSeries.from_dataframe(df)


def build_snapshot(symbol: str, series: PriceSeries) -> StockSnapshot:
    """Run the indicator and flow engines over a cleaned series."""
    closes = series.closes
    current_price = float(closes[-1])
    previous_close = float(closes[-2]) if len(closes) > 1 else current_price
    change = current_price - previous_close
    change_percent = change / previous_close * 100 if previous_close else 0.0

    indicators = TechnicalAnalyst().compute_indicators(series, current_price)
    flow = BandarmologyAnalyzer().analyze(series)

    return StockSnapshot(
        symbol=symbol,
        name=symbol,
        current_price=current_price,
        change=change,
        change_percent=change_percent,
        indicators=indicators,
        flow=flow,
    )


def get_stock_snapshot(ticker: str, market_data: MarketData = None) -> StockSnapshot:
    """
    Fetch one symbol and analyze it.

    Raises:
        MarketDataError: when Yahoo returns nothing usable or fewer than MIN_BARS clean bars
    """
    md = market_data or MarketData()
    symbol = normalize_symbol(ticker)
    series = md.get_price_series(symbol)
    return build_snapshot(symbol, series)
