"""
Position Aggregator.
Folds the transaction log into net lots and cost basis per symbol
using weighted-average cost (not FIFO lot matching).
"""
import logging
from typing import Dict, Iterable

import config
from modules.portfolio_models import Position, Transaction

logger = logging.getLogger(__name__)


def average_price(cost_basis: float, total_lots: int) -> float:
    """Per-share average cost; 0 when nothing is held."""
    if total_lots <= 0:
        return 0.0
    return cost_basis / (total_lots * config.LOT_SIZE)


def apply_transaction(position: Position, txn: Transaction) -> Position:
    """Return the position after one transaction. The input is left untouched."""
    lots = position.total_lots
    cost = position.cost_basis

    if txn.type == 'SELL':
        avg = average_price(cost, lots)
        sold = min(lots, txn.lots)  # never go below zero lots
        if sold < txn.lots:
            logger.warning(
                f"[{txn.symbol}] Sell of {txn.lots} lots exceeds holding of {lots}; clamped to {sold}"
            )
        lots -= sold
        cost -= sold * config.LOT_SIZE * avg
        if lots == 0:
            cost = 0.0
    else:
        lots += txn.lots
        cost += txn.lots * config.LOT_SIZE * txn.price

    return Position(
        symbol=position.symbol,
        total_lots=lots,
        avg_price=average_price(cost, lots),
        cost_basis=cost,
    )


def aggregate_positions(transactions: Iterable[Transaction]) -> Dict[str, Position]:
    """
    Fold transactions in the given (chronological) order.

    Returns:
        {symbol: Position} in order of first appearance.
    """
    positions: Dict[str, Position] = {}
    for txn in transactions:
        current = positions.get(txn.symbol) or Position(symbol=txn.symbol)
        positions[txn.symbol] = apply_transaction(current, txn)
    return positions
