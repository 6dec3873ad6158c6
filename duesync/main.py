from __future__ import annotations

import asyncio
import logging
import os
import sys

from duesync.config import Settings, load_settings
from duesync.domain.common.errors import CredentialsError, DomainError
from duesync.domain.common.models import Principal
from duesync.domain.common.ports import Notifier
from duesync.domain.common.time import to_iso
from duesync.domain.sync.approval import ApprovalWorkflow
from duesync.domain.sync.categories import CategoryResolver
from duesync.domain.sync.collector import AssignmentCollector
from duesync.domain.sync.reconciler import Reconciler
from duesync.domain.sync.service import SyncService
from duesync.domain.tasks.service import TaskService
from duesync.domain.tasks.state import LocalState
from duesync.infra.cache.memory_cache import TtlCache
from duesync.infra.clock.system_clock import SystemClock
from duesync.infra.db.connection import Database
from duesync.infra.db.repo.categories_sqlite import CategoriesSqliteRepo
from duesync.infra.db.repo.rejections_sqlite import RejectionsSqliteRepo
from duesync.infra.db.repo.settings_sqlite import SettingsSqliteRepo
from duesync.infra.db.repo.tasks_sqlite import TasksSqliteRepo
from duesync.infra.db.schema_version import apply_migrations
from duesync.infra.http.lms_client import HttpLmsClient
from duesync.infra.ids.uuid_gen import UuidGenerator
from duesync.infra.kv.file_store import FileKeyValueStore
from duesync.infra.scheduler.loop import AsyncioScheduler

logger = logging.getLogger(__name__)


class LogNotifier(Notifier):
    """Headless notifier: user-facing messages go to the log."""

    def error(self, message: str) -> None:
        logger.error(message)

    def info(self, message: str) -> None:
        logger.info(message)


async def run_once(settings: Settings) -> int:
    """One sync for the configured user; returns the number of pending candidates."""
    os.makedirs(os.path.dirname(settings.db_path) or ".", exist_ok=True)

    clock = SystemClock(settings.timezone)
    ids = UuidGenerator()
    db = Database(str(settings.db_path))
    applied = await apply_migrations(db, to_iso(clock.now()))
    if applied:
        logger.info(f"Applied {applied} migration(s) to {settings.db_path}")

    principal = Principal(settings.user_id)
    task_repo = TasksSqliteRepo(db, principal, ids, clock)
    category_repo = CategoriesSqliteRepo(db, principal, ids, clock)
    rejection_repo = RejectionsSqliteRepo(db, principal, clock)
    settings_repo = SettingsSqliteRepo(db, principal, clock)

    base_url, token = settings.lms_base_url, settings.lms_token
    if not (base_url and token):
        stored = await settings_repo.get()
        base_url, token = base_url or stored.lms_url, token or stored.lms_token

    kv = FileKeyValueStore(settings.kv_dir)
    scheduler = AsyncioScheduler()
    notifier = LogNotifier()
    state = LocalState()

    task_service = TaskService(
        state, task_repo, category_repo, scheduler, notifier, undo_seconds=settings.undo_seconds
    )
    workflow = ApprovalWorkflow(
        state, task_repo, rejection_repo, kv, scheduler, ids, notifier, undo_seconds=settings.undo_seconds
    )
    workflow.restore_pending()
    await task_service.load()

    async with HttpLmsClient(base_url, token) as client:
        sync = SyncService(
            collector=AssignmentCollector(client, settings.fetch_concurrency),
            resolver=CategoryResolver(category_repo),
            reconciler=Reconciler(
                task_service,
                client,
                TtlCache(clock, settings.cache_ttl_seconds),
                settings.submission_concurrency,
            ),
            workflow=workflow,
            tasks=task_service,
            rejections=rejection_repo,
            kv=kv,
            clock=clock,
            fetch_interval_minutes=settings.fetch_interval_minutes,
        )
        report = await sync.fetch()
        await workflow.settle()

    await scheduler.flush()

    if report is None:
        return len(state.pending)
    if report.credentials_error:
        raise CredentialsError(report.credentials_reason or "rejected", report.credentials_error)
    for candidate in report.pending:
        logger.info(f"Pending: {candidate.course_name} / {candidate.title} (due {candidate.due_date})")
    return len(report.pending)


async def main() -> None:
    settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - [PID:%(process)d] - %(message)s'
    )

    logger.info("=" * 60)
    logger.info(f"duesync starting - PID: {os.getpid()}")
    logger.info("=" * 60)

    try:
        pending = await run_once(settings)
        logger.info(f"{pending} candidate(s) waiting for review")
    except CredentialsError as e:
        logger.error(f"Cannot sync: {e}")
        sys.exit(2)
    except DomainError as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        sys.exit(1)


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
