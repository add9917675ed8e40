"""
Backup settings and their persistence.

Settings live as one document in the `settings` collection of the
document store:

    {
      "_id": "backup_settings",
      "backup": {"enabled": true, "time": "0 2 * * *"},
      "lastRunAt": "2024-05-01T02:00:00.123000+00:00"
    }

`backup.time` holds the cron expression. The scheduler reads settings only
when it is explicitly re-initialized; saving settings does not reschedule
by itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..config import DEFAULT_SCHEDULE_EXPRESSION
from ..errors import ValidationError
from ..store.base import Document, DocumentStore

logger = logging.getLogger(__name__)

SETTINGS_COLLECTION = "settings"
SETTINGS_ID = "backup_settings"


@dataclass(frozen=True)
class BackupSettings:
    """Scheduled backup settings.

    Attributes:
        enabled: Whether automatic backups run
        schedule_expression: 5-field cron expression
        last_run_at: When the last scheduled backup succeeded
    """

    enabled: bool = False
    schedule_expression: str = DEFAULT_SCHEDULE_EXPRESSION
    last_run_at: datetime | None = None

    @classmethod
    def from_document(
        cls,
        doc: Document | None,
        default_expression: str = DEFAULT_SCHEDULE_EXPRESSION,
    ) -> BackupSettings:
        """Build settings from the persisted document (defaults when absent)."""
        if not doc:
            return cls(schedule_expression=default_expression)

        backup = doc.get("backup")
        if not isinstance(backup, dict):
            if backup is not None:
                logger.warning(f"Ignoring unreadable backup settings: {backup!r}")
            backup = {}

        last_run_at = None
        if isinstance(doc.get("lastRunAt"), str):
            try:
                last_run_at = datetime.fromisoformat(doc["lastRunAt"])
            except ValueError:
                logger.warning(f"Ignoring unreadable lastRunAt: {doc['lastRunAt']!r}")

        expression = backup.get("time")
        if not isinstance(expression, str) or not expression:
            expression = default_expression
        return cls(
            enabled=backup.get("enabled") is True,
            schedule_expression=expression,
            last_run_at=last_run_at,
        )

    @classmethod
    def from_request(
        cls,
        body: Any,
        default_expression: str = DEFAULT_SCHEDULE_EXPRESSION,
    ) -> BackupSettings:
        """Build settings from an API body.

        Accepts {"enabled", "scheduleExpression"} or the persisted
        {"backup": {"enabled", "time"}} shape.

        Raises:
            ValidationError: If the body is not an object or enabled is not a boolean
        """
        if not isinstance(body, dict):
            raise ValidationError("Invalid settings: expected an object")
        if isinstance(body.get("backup"), dict):
            body = {
                "enabled": body["backup"].get("enabled", False),
                "scheduleExpression": body["backup"].get("time"),
            }
        enabled = body.get("enabled", False)
        if not isinstance(enabled, bool):
            raise ValidationError("Invalid settings: enabled must be true or false", field_name="enabled")
        return cls(
            enabled=enabled,
            schedule_expression=body.get("scheduleExpression") or default_expression,
        )

    def to_document(self) -> Document:
        return {
            "_id": SETTINGS_ID,
            "backup": {"enabled": self.enabled, "time": self.schedule_expression},
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "scheduleExpression": self.schedule_expression,
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
        }


class SettingsRepository:
    """Reads and writes the backup settings document."""

    def __init__(
        self,
        store: DocumentStore,
        default_expression: str = DEFAULT_SCHEDULE_EXPRESSION,
    ) -> None:
        self.store = store
        self.default_expression = default_expression

    async def load(self) -> BackupSettings:
        doc = await self.store.find_one(SETTINGS_COLLECTION, SETTINGS_ID)
        return BackupSettings.from_document(doc, self.default_expression)

    async def save(self, settings: BackupSettings) -> BackupSettings:
        """Persist settings, keeping the recorded last run."""
        current = await self.load()
        settings = replace(settings, last_run_at=settings.last_run_at or current.last_run_at)
        await self.store.upsert(SETTINGS_COLLECTION, settings.to_document())
        logger.info(
            "Saved backup settings",
            extra={"enabled": settings.enabled, "expression": settings.schedule_expression},
        )
        return settings

    async def record_run(self, at: datetime) -> None:
        """Record a successful scheduled backup."""
        current = await self.load()
        await self.store.upsert(SETTINGS_COLLECTION, replace(current, last_run_at=at).to_document())
