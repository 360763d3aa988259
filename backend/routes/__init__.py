"""
Backend Routes Module

This module exports the FastAPI routers of the StockWise backend:

- portfolio_router: stock analysis, portfolio evaluation, opportunity scan
  and backup export/import endpoints

Usage:
    from routes import portfolio_router

    app.include_router(portfolio_router)
"""
from .portfolio import router as portfolio_router

__all__ = [
    "portfolio_router",
]
