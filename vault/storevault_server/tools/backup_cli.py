"""
Backup CLI tool for StoreVault.

Runs the backup engine operations against the configured store without
a running server:

    storevault-backup export [--stdout]
    storevault-backup list
    storevault-backup restore <artifact name or path to a .json file>
    storevault-backup purge --yes
    storevault-backup schedule [--run-now]

Store and artifact locations come from the same environment variables as
the server (see config.py).

Invariants:
    - purge refuses to run without --yes
    - Exit code 0 on success, 1 on any error
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ..artifacts import create_artifact_store
from ..config import ServerConfig, StoreBackend
from ..engine import BackupEngine
from ..errors import BackupError
from ..snapshot.exporter import serialize_payload
from ..snapshot.importer import parse_payload
from ..store import StoreError, create_document_store

logger = logging.getLogger(__name__)


class BackupCLI:
    """Command implementations for the backup CLI.

    Example:
        >>> cli = BackupCLI(ServerConfig.from_env())
        >>> asyncio.run(cli.run(args))
    """

    def __init__(self, config: ServerConfig) -> None:
        self.config = config

    async def _open_engine(self) -> BackupEngine:
        store = create_document_store(self.config.storage)
        await store.connect()
        artifacts = create_artifact_store(self.config.artifacts, self.config.s3)
        return BackupEngine(store, artifacts, default_expression=self.config.schedule.default_expression)

    async def run(self, args: argparse.Namespace) -> int:
        if self.config.storage.backend == StoreBackend.MEMORY:
            print("Warning: STORE_BACKEND=memory, the CLI sees an empty store", file=sys.stderr)

        engine = await self._open_engine()
        try:
            handler = getattr(self, f"cmd_{args.command}")
            return await handler(engine, args)
        finally:
            await engine.shutdown()
            await engine.store.close()

    async def cmd_export(self, engine: BackupEngine, args: argparse.Namespace) -> int:
        if args.stdout:
            payload = await engine.exporter.build_payload()
            sys.stdout.write(serialize_payload(payload).decode("utf-8") + "\n")
            return 0

        info = await engine.export_snapshot()
        print(f"Backup created: {info.file_name}")
        print(f"  Location: {info.location}")
        print(f"  Collections: {info.collection_count}")
        print(f"  Documents: {info.document_count}")
        return 0

    async def cmd_list(self, engine: BackupEngine, args: argparse.Namespace) -> int:
        artifacts = await engine.list_artifacts()
        if not artifacts:
            print("No backups found")
            return 0
        for artifact in artifacts:
            print(f"{artifact.file_name}  {artifact.last_modified.isoformat()}  {artifact.size_bytes}")
        return 0

    async def cmd_restore(self, engine: BackupEngine, args: argparse.Namespace) -> int:
        source = Path(args.source)
        if source.is_file():
            payload = parse_payload(source.read_bytes())
            result = await engine.restore_snapshot(payload)
        else:
            result = await engine.restore_artifact(args.source)

        print("Restore completed successfully")
        print(f"  Collections: {len(result.collections_restored)}")
        print(f"  Documents inserted: {result.documents_inserted}")
        print(f"  Duration: {result.duration_ms}ms")
        return 0

    async def cmd_purge(self, engine: BackupEngine, args: argparse.Namespace) -> int:
        if not args.yes:
            print("Refusing to delete all data without --yes", file=sys.stderr)
            return 1
        result = await engine.purge_all()
        print(
            f"All data deleted: {result.documents_deleted} documents "
            f"in {len(result.collections_purged)} collections"
        )
        return 0

    async def cmd_schedule(self, engine: BackupEngine, args: argparse.Namespace) -> int:
        settings = await engine.settings.load()
        state = "enabled" if settings.enabled else "disabled"
        print(f"Scheduled backups {state} (cron: {settings.schedule_expression})")
        if settings.last_run_at:
            print(f"  Last run: {settings.last_run_at.isoformat()}")

        if args.run_now:
            await engine.init_schedule(settings)
            job = engine.scheduler.job
            if job is None:
                print("Scheduling is disabled; nothing to run", file=sys.stderr)
                return 1
            print(f"  Next run: {job.next_fire_time().isoformat()}")
            ok = await job.fire()
            print("Scheduled backup completed" if ok else f"Scheduled backup failed: {job.last_error}")
            return 0 if ok else 1
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StoreVault backup, restore and purge")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Export every collection into a new backup")
    export.add_argument(
        "--stdout", action="store_true", help="Print the backup instead of storing it"
    )
    sub.add_parser("list", help="List backups, newest first")

    restore = sub.add_parser("restore", help="Replace collections from a backup")
    restore.add_argument("source", help="Backup name or path to a backup .json file")

    purge = sub.add_parser("purge", help="Delete all documents from all collections")
    purge.add_argument("--yes", action="store_true", help="Confirm deleting all data")

    schedule = sub.add_parser("schedule", help="Show scheduled backup settings")
    schedule.add_argument(
        "--run-now", action="store_true", help="Run one scheduled backup immediately"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the backup tool."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        code = asyncio.run(BackupCLI(config).run(args))
    except (BackupError, StoreError) as e:
        print(f"{args.command.capitalize()} failed: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
