from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from duesync.constants import DEFAULT_FETCH_INTERVAL_MINUTES, LAST_FETCH_KEY
from duesync.domain.common.errors import CredentialsError, NetworkError, ProtocolError, UpstreamError
from duesync.domain.common.ports import Clock, KeyValueStore
from duesync.domain.common.time import from_iso, to_iso
from duesync.domain.sync.approval import ApprovalWorkflow
from duesync.domain.sync.categories import CategoryResolver
from duesync.domain.sync.collector import AssignmentCollector
from duesync.domain.sync.models import CollectionResult, SyncReport
from duesync.domain.sync.reconciler import Reconciler, filter_sync_disabled, suppress
from duesync.domain.tasks.ports import RejectionRepository
from duesync.domain.tasks.service import TaskService

logger = logging.getLogger(__name__)

AUTH_STATUSES = frozenset({400, 401, 403})

CREDENTIAL_MESSAGES = {
    "required": "LMS credentials are required. Add your LMS URL and token.",
    "invalid_url": "LMS URL looks invalid. Check the base URL for your school.",
    "rejected": "The LMS rejected the credentials. Verify your LMS URL and API token.",
}


def classify_credentials_error(error: Exception) -> Optional[CredentialsError]:
    """Map a top-level fetch failure to a credentials problem, or None if it is not one."""
    if isinstance(error, CredentialsError):
        return error
    if isinstance(error, UpstreamError) and error.status in AUTH_STATUSES:
        reason = "invalid_url" if error.status == 400 else "rejected"
        return CredentialsError(reason, CREDENTIAL_MESSAGES[reason])
    if isinstance(error, (ProtocolError, NetworkError)):
        return CredentialsError("invalid_url", CREDENTIAL_MESSAGES["invalid_url"])
    return None


class SyncService:
    """
    One fetch -> categories -> suppress -> pending list -> reconcile run per call.

    At most one run is active: starting a new one cancels the one in flight.
    """

    def __init__(
        self,
        collector: AssignmentCollector,
        resolver: CategoryResolver,
        reconciler: Reconciler,
        workflow: ApprovalWorkflow,
        tasks: TaskService,
        rejections: RejectionRepository,
        kv: KeyValueStore,
        clock: Clock,
        fetch_interval_minutes: int = DEFAULT_FETCH_INTERVAL_MINUTES,
    ) -> None:
        self._collector = collector
        self._resolver = resolver
        self._reconciler = reconciler
        self._workflow = workflow
        self._tasks = tasks
        self._rejections = rejections
        self._kv = kv
        self._clock = clock
        self._interval = timedelta(minutes=fetch_interval_minutes)
        self._inflight: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def fetch(self) -> Optional[SyncReport]:
        """Returns None when a newer fetch superseded this one."""
        if self._inflight is not None and not self._inflight.done():
            logger.info("Cancelling in-flight fetch in favour of a new one")
            self._inflight.cancel()

        run = asyncio.ensure_future(self._run())
        self._inflight = run
        try:
            return await run
        except asyncio.CancelledError:
            if run.cancelled() and self._inflight is not run:
                return None
            raise
        finally:
            if self._inflight is run:
                self._inflight = None

    def last_fetch(self) -> Optional[datetime]:
        raw = self._kv.get(LAST_FETCH_KEY)
        if not raw:
            return None
        try:
            return from_iso(raw.decode("utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable last fetch timestamp: %r", raw)
            return None

    def is_fetch_due(self) -> bool:
        last = self.last_fetch()
        return last is None or self._clock.now() - last >= self._interval

    async def _run(self) -> SyncReport:
        categories = await self._tasks.load_categories()

        try:
            collection: CollectionResult = await self._collector.collect()
        except (CredentialsError, UpstreamError, ProtocolError, NetworkError) as e:
            problem = classify_credentials_error(e)
            if problem is None:
                raise
            logger.warning(f"LMS fetch failed with a credentials problem ({problem.reason}): {e}")
            self._touch_last_fetch()
            return SyncReport(credentials_error=str(problem), credentials_reason=problem.reason)

        changed = await self._resolver.ensure(collection.courses, categories)
        if changed:
            categories = await self._tasks.load_categories()

        in_window = self._workflow.rejecting
        rejected = set(await self._rejections.list_ids()) | in_window
        visible = suppress(collection.candidates, self._tasks.state.tasks, rejected)
        visible = filter_sync_disabled(visible, categories)

        submitted = [c for c in visible if c.has_submitted]
        pending = [c for c in visible if not c.has_submitted]

        auto_approved = await self._workflow.auto_approve_submitted(submitted)
        self._workflow.replace_pending(pending)

        report = await self._reconciler.reconcile(collection.candidates)
        self._touch_last_fetch()

        logger.info(
            "Fetch done: fetched=%d pending=%d auto_approved=%d due_updates=%d auto_completed=%d",
            len(collection.candidates),
            len(pending),
            auto_approved,
            report.due_date_updates,
            report.auto_completed,
        )
        return SyncReport(
            pending=tuple(pending),
            fetched=len(collection.candidates),
            auto_approved=auto_approved,
            categories_changed=changed,
            reconcile=report,
        )

    def _touch_last_fetch(self) -> None:
        self._kv.set(LAST_FETCH_KEY, to_iso(self._clock.now()).encode("utf-8"))
