import json

import pytest

import config
from modules.backup import BackupError, export_backup, import_backup
from modules.portfolio_models import Transaction, UserSettings


def _settings():
    return UserSettings(
        total_capital=50_000_000,
        max_allocation_per_stock=20,
        risk_tolerance="AGGRESSIVE",
        take_profit_target=25,
        stop_loss_target=5,
    )


def test_export_then_import_is_lossless():
    transactions = [
        Transaction(id="t1", symbol="BBCA", lots=9, price=1910, timestamp="2026-01-05T09:00:00Z"),
        Transaction(id="t2", symbol="BBCA", type="SELL", lots=5, price=2100, timestamp="2026-02-01T09:00:00Z"),
    ]
    settings = _settings()

    text = export_backup(transactions, settings)
    restored = import_backup(text)

    assert restored.transactions == transactions
    assert restored.settings == settings
    assert restored.version == "1.0"


def test_export_uses_camel_case_keys():
    data = json.loads(export_backup([Transaction(symbol="TLKM", lots=1, price=3000)], _settings()))

    assert set(data) == {"transactions", "settings", "exportDate", "version"}
    assert data["settings"]["totalCapital"] == 50_000_000
    assert data["settings"]["stopLossTarget"] == 5
    assert data["transactions"][0]["symbol"] == "TLKM"


def test_import_legacy_backup():
    legacy = {
        "transactions": [
            {"id": "1", "symbol": "antm", "lots": 3, "buyPrice": 1500, "date": "2025-12-01"},
        ],
        "settings": {
            "totalCapital": 10_000_000,
            "maxAllocationPerStock": 30,
            "riskTolerance": "CONSERVATIVE",
            "takeProfitTarget": 15,
            "stopLossTarget": 8,
        },
    }

    backup = import_backup(json.dumps(legacy))

    txn = backup.transactions[0]
    assert txn.symbol == "ANTM"
    assert txn.type == "BUY"
    assert txn.price == 1500
    assert txn.timestamp == "2025-12-01"
    assert backup.settings.risk_tolerance == "CONSERVATIVE"


def test_import_missing_sections_fall_back():
    backup = import_backup("{}")

    assert backup.transactions == []
    assert backup.settings.total_capital == config.DEFAULT_SETTINGS["totalCapital"]
    assert backup.settings.stop_loss_target == config.DEFAULT_SETTINGS["stopLossTarget"]


@pytest.mark.parametrize("content", [
    "not json",
    "[1, 2, 3]",
    json.dumps({"transactions": [{"symbol": "BBCA", "lots": 0, "price": 1000}]}),
    json.dumps({"transactions": [], "settings": {"totalCapital": -1}}),
    json.dumps({"transactions": "BBCA"}),
])
def test_invalid_backups_rejected(content):
    with pytest.raises(BackupError):
        import_backup(content)
