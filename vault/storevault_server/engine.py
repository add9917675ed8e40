"""
Backup engine for StoreVault.

The engine wires the document store, the artifact store and the four
operations together, and holds the one Scheduler of the process. It is
what the HTTP API, the CLI and the server talk to.

Settings flow:
    save_settings(settings) -> persisted -> init_schedule() -> Scheduler

The scheduler only observes settings when init_schedule() runs, which
happens at startup and right after every settings save.

Invariants:
    - Exactly one Scheduler per engine, and one engine per process
    - Core errors propagate unchanged to the caller
    - Scheduled runs record lastRunAt; failing to record is logged only

Limitations:
    - No locking across operations. An export racing a restore or purge
      can produce an inconsistent snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from .artifacts.base import ArtifactInfo, ArtifactStore
from .config import DEFAULT_SCHEDULE_EXPRESSION
from .schedule.scheduler import Scheduler, local_now, validate_schedule_expression
from .schedule.settings import BackupSettings, SettingsRepository
from .snapshot.exporter import SnapshotExporter, SnapshotInfo
from .snapshot.importer import RestoreImporter, RestoreResult, parse_payload
from .snapshot.purge import PurgeOperator, PurgeResult
from .store.base import DocumentStore

logger = logging.getLogger(__name__)


class BackupEngine:
    """Entry point for snapshot, restore, purge and scheduling.

    Attributes:
        store: Document store
        artifacts: Artifact store
        exporter: Snapshot exporter
        importer: Restore importer
        purger: Purge operator
        settings: Backup settings repository
        scheduler: The process scheduler

    Example:
        >>> engine = BackupEngine(store, artifacts)
        >>> await engine.init_schedule()
        >>> info = await engine.export_snapshot()
    """

    def __init__(
        self,
        store: DocumentStore,
        artifacts: ArtifactStore,
        default_expression: str = DEFAULT_SCHEDULE_EXPRESSION,
        clock: Callable[[], datetime] = local_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Connected (or soon to be connected) document store
            artifacts: Artifact store
            default_expression: Cron expression used when settings carry none
            clock: Current time for cron evaluation
            sleep: Wait function for the scheduler
        """
        self.store = store
        self.artifacts = artifacts
        self.exporter = SnapshotExporter(store, artifacts)
        self.importer = RestoreImporter(store)
        self.purger = PurgeOperator(store)
        self.settings = SettingsRepository(store, default_expression)
        self.scheduler = Scheduler(self._scheduled_export, clock=clock, sleep=sleep)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def export_snapshot(self) -> SnapshotInfo:
        """Export every collection into a new artifact."""
        return await self.exporter.create_snapshot()

    async def restore_snapshot(self, payload: Any) -> RestoreResult:
        """Replace collections from a payload mapping."""
        return await self.importer.restore_snapshot(payload)

    async def restore_artifact(self, name: str) -> RestoreResult:
        """Restore from a stored artifact.

        Raises:
            ArtifactNotFoundError: If no artifact has this name
            ValidationError: If the artifact body is not a valid payload
        """
        body = await self.artifacts.read(name)
        payload = parse_payload(body)
        logger.info("Restoring from artifact", extra={"file_name": name})
        return await self.importer.restore_snapshot(payload)

    async def purge_all(self) -> PurgeResult:
        """Delete every document from every collection."""
        return await self.purger.purge_all()

    async def list_artifacts(self) -> list[ArtifactInfo]:
        return await self.artifacts.list()

    async def read_artifact(self, name: str) -> bytes:
        return await self.artifacts.read(name)

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    async def init_schedule(self, settings: BackupSettings | None = None) -> BackupSettings:
        """(Re)initialize scheduled backups.

        Args:
            settings: Settings to apply (loaded from the store if omitted)

        Returns:
            The settings that were applied

        Raises:
            ValidationError: If enabled with an invalid schedule expression
        """
        if settings is None:
            settings = await self.settings.load()
        await self.scheduler.init_schedule(settings)
        return settings

    async def save_settings(self, settings: BackupSettings) -> BackupSettings:
        """Persist settings and apply them.

        The expression is validated before anything is saved, so invalid
        settings never reach the store.

        Raises:
            ValidationError: If enabled with an invalid schedule expression
        """
        if settings.enabled:
            settings = BackupSettings(
                enabled=True,
                schedule_expression=validate_schedule_expression(settings.schedule_expression),
                last_run_at=settings.last_run_at,
            )

        saved = await self.settings.save(settings)
        await self.init_schedule(saved)
        return saved

    async def _scheduled_export(self) -> None:
        """Body of every scheduled run. Errors propagate to the job, which logs them."""
        info = await self.exporter.create_snapshot()
        try:
            await self.settings.record_run(info.created_at)
        except Exception as e:
            logger.warning(f"Failed to record backup run: {e}")

    async def shutdown(self) -> None:
        """Stop scheduled backups."""
        await self.scheduler.stop()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "store_connected": self.store.is_connected,
            "exporter": self.exporter.stats,
            "scheduler": self.scheduler.stats,
        }
