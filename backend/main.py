"""
Main FastAPI Application - StockWise

Portfolio analysis backend: technical indicators, bandarmology flow
scoring, action suggestions and trading plans for IDX equities.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

import config
from routes import portfolio_router

# Create FastAPI app
app = FastAPI(
    title=config.API_TITLE,
    description="Bandarmology flow scoring, suggestions and trading plans for IDX portfolios",
    version=config.API_VERSION
)

# CORS for the web client (comma-separated CORS_ORIGINS, default any)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip compression for large JSON responses (portfolio items carry full plans)
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.on_event("startup")
async def startup_event():
    logger = logging.getLogger("uvicorn")
    logger.info(
        f"Default settings: capital={config.DEFAULT_SETTINGS['totalCapital']:,.0f}, "
        f"TP={config.DEFAULT_SETTINGS['takeProfitTarget']}%, SL={config.DEFAULT_SETTINGS['stopLossTarget']}%"
    )
    logger.info(f"Market data: period={config.HISTORY_PERIOD}, interval={config.HISTORY_INTERVAL}, "
                f"workers={config.FETCH_MAX_WORKERS}")


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "online",
        "message": "StockWise API is running",
        "version": config.API_VERSION,
        "features": {
            "stocks": "Indicators and bandarmology flow per symbol",
            "portfolio": "Positions, suggestions and trading plans",
            "opportunities": "Ranked entry scan for non-held symbols",
            "backup": "JSON export/import of transactions and settings"
        }
    }


# Register all routers
app.include_router(portfolio_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=config.API_HOST, port=config.API_PORT, reload=True)
