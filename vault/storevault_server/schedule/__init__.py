"""
Scheduled backups for StoreVault.

This module provides:
- BackupSettings and the repository persisting them in the document store
- The cron Scheduler owning the single active backup job

Invariants:
    - At most one active job per process
    - Reconfiguration only happens through Scheduler.init_schedule()
    - Scheduled export failures are logged, never raised through the timer
"""

from .settings import SETTINGS_COLLECTION, SETTINGS_ID, BackupSettings, SettingsRepository
from .scheduler import Scheduler, SchedulerJob, validate_schedule_expression

__all__ = [
    "BackupSettings",
    "SettingsRepository",
    "SETTINGS_COLLECTION",
    "SETTINGS_ID",
    "Scheduler",
    "SchedulerJob",
    "validate_schedule_expression",
]
