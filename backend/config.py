import os

from dotenv import load_dotenv

load_dotenv()

# Market conventions (IDX)
LOT_SIZE = 100  # 1 lot = 100 shares
TICKER_SUFFIX = ".JK"

# Market Data Settings
HISTORY_PERIOD = os.getenv("HISTORY_PERIOD", "3mo")
HISTORY_INTERVAL = os.getenv("HISTORY_INTERVAL", "1d")
FETCH_MAX_WORKERS = int(os.getenv("FETCH_MAX_WORKERS", "8"))

# Analyzer Settings
MIN_BARS = 20
SR_LOOKBACK = 60
RSI_PERIOD = 14
ATR_PERIOD = 14

# Default user settings (used when a request or backup carries none)
DEFAULT_SETTINGS = {
    "totalCapital": float(os.getenv("DEFAULT_TOTAL_CAPITAL", "100000000")),  # 100jt
    "maxAllocationPerStock": float(os.getenv("DEFAULT_MAX_ALLOCATION", "15")),
    "riskTolerance": os.getenv("DEFAULT_RISK_TOLERANCE", "MODERATE"),
    "takeProfitTarget": float(os.getenv("DEFAULT_TAKE_PROFIT", "20")),
    "stopLossTarget": float(os.getenv("DEFAULT_STOP_LOSS", "7")),
}

# Backup
BACKUP_VERSION = "1.0"

# API Settings
API_TITLE = "StockWise Bandarmology API"
API_VERSION = "1.0.0"
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
