"""
Portfolio backup: JSON export/import of {transactions, settings}.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from pydantic import ValidationError

import config
from modules.portfolio_models import BackupPayload, Transaction, UserSettings

logger = logging.getLogger(__name__)


class BackupError(Exception):
    """Backup content is not valid JSON or fails validation."""


def default_settings() -> UserSettings:
    return UserSettings.model_validate(config.DEFAULT_SETTINGS)


def build_backup(transactions: Iterable[Transaction],
                 settings: Optional[UserSettings] = None) -> BackupPayload:
    return BackupPayload(
        transactions=list(transactions),
        settings=settings or default_settings(),
        export_date=datetime.now(timezone.utc).isoformat(),
        version=config.BACKUP_VERSION,
    )


def export_backup(transactions: Iterable[Transaction],
                  settings: Optional[UserSettings] = None) -> str:
    """Serialize to camelCase JSON, the format the web client reads back."""
    payload = build_backup(transactions, settings)
    return payload.model_dump_json(by_alias=True, indent=2)


def import_backup(content: Union[str, bytes, Dict[str, Any]]) -> BackupPayload:
    """
    Parse and validate a backup.

    Accepts raw JSON text or an already-decoded object. A missing `settings`
    falls back to the defaults; missing `transactions` yields an empty list.

    Raises:
        BackupError: invalid JSON, wrong shape, or invalid records
    """
    if isinstance(content, (str, bytes)):
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise BackupError(f"Invalid backup file: {e.msg}") from e
    else:
        data = content

    if not isinstance(data, dict):
        raise BackupError("Invalid backup file: expected a JSON object")

    data = dict(data)
    if data.get("transactions") is None:
        data["transactions"] = []
    if data.get("settings") is None:
        data["settings"] = config.DEFAULT_SETTINGS

    try:
        payload = BackupPayload.model_validate(data)
    except ValidationError as e:
        raise BackupError(f"Invalid backup file: {e.error_count()} validation error(s)") from e

    if payload.version != config.BACKUP_VERSION:
        logger.warning(f"Importing backup version {payload.version}, expected {config.BACKUP_VERSION}")

    logger.info(f"Imported backup with {len(payload.transactions)} transactions")
    return payload
