"""
Candidate -> task (approve) and candidate -> rejection record (reject).

Both mutate LocalState optimistically first and persist afterwards. Approve persists
right away and rolls back on failure; reject waits out an undo window before it
writes, and still rolls back if that late write fails.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import FrozenSet, List, Optional, Sequence, Set

from duesync.constants import (
    DEFAULT_UNDO_SECONDS,
    PENDING_CACHE_KEY,
    RESTORE_KEY_PREFIX,
    TASK_STATUS_COMPLETE,
    TASK_STATUS_INCOMPLETE,
    TASK_TYPE_ASSIGNMENT,
    TASK_TYPE_QUIZ,
    TEMP_ID_PREFIX,
)
from duesync.domain.common.errors import DomainError, StaleStateError
from duesync.domain.common.ports import IdGenerator, KeyValueStore, Notifier, Scheduler
from duesync.domain.sync.models import CandidateAssignment
from duesync.domain.tasks.models import Task
from duesync.domain.tasks.ports import RejectionRepository, TaskRepository
from duesync.domain.tasks.rules import validate_task
from duesync.domain.tasks.state import LocalState, Transaction, UndoHandle
from duesync.utils import get_json, set_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalForm:
    """
    User edits made before approving. Unset fields fall back to the candidate.
    category_id None means "the course's category"; "" means uncategorized.
    """

    due_date: Optional[str] = None
    category_id: Optional[str] = None
    task_type: Optional[str] = None
    notes: str = ""
    url: Optional[str] = None
    due_date_override: bool = False


class ApprovalWorkflow:
    def __init__(
        self,
        state: LocalState,
        tasks: TaskRepository,
        rejections: RejectionRepository,
        kv: KeyValueStore,
        scheduler: Scheduler,
        ids: IdGenerator,
        notifier: Optional[Notifier] = None,
        undo_seconds: float = DEFAULT_UNDO_SECONDS,
    ) -> None:
        self._state = state
        self._tasks = tasks
        self._rejections = rejections
        self._kv = kv
        self._scheduler = scheduler
        self._ids = ids
        self._notifier = notifier
        self._undo_seconds = undo_seconds
        self._selected_id: Optional[str] = None
        self._rejecting: Set[str] = set()
        self._background: Set[asyncio.Future] = set()

    # ----- pending list + review cursor -----

    @property
    def current(self) -> Optional[CandidateAssignment]:
        i = self._state.review_index
        pending = self._state.pending
        return pending[i] if 0 <= i < len(pending) else None

    @property
    def rejecting(self) -> FrozenSet[str]:
        """External ids rejected inside the undo window; no record is stored for them yet."""
        return frozenset(self._rejecting)

    async def settle(self) -> None:
        """Wait for auto-approve writes that outlived the fetch that started them."""
        while self._background:
            await asyncio.wait(set(self._background))

    def replace_pending(self, items: Sequence[CandidateAssignment]) -> None:
        """Install a freshly fetched pending list, keeping the reviewed item selected."""
        self._state.set_pending(items)
        self._persist_pending()
        self._follow_selection()

    def restore_pending(self) -> Sequence[CandidateAssignment]:
        raw = get_json(self._kv, PENDING_CACHE_KEY, [])
        items: List[CandidateAssignment] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                items.append(CandidateAssignment.from_dict(entry))
            except (TypeError, KeyError) as e:
                logger.warning(f"Skipping unreadable cached candidate: {e}")
        self._state.set_pending(items)
        return items

    def open_review(self, external_id: str) -> int:
        index = self._state.pending_index(external_id)
        self._selected_id = external_id if index >= 0 else None
        self._state.set_review_index(index)
        return index

    def close_review(self) -> None:
        self._selected_id = None
        self._state.set_review_index(-1)

    def navigate(self, direction: int) -> int:
        new_index = self._state.review_index + direction
        if 0 <= new_index < len(self._state.pending):
            self._state.set_review_index(new_index)
            self._selected_id = self._state.pending[new_index].external_id
        return self._state.review_index

    # ----- approve -----

    async def approve(self, candidate: CandidateAssignment, form: Optional[ApprovalForm] = None) -> Optional[Task]:
        draft = self._build_task(candidate, form or ApprovalForm(), TASK_STATUS_INCOMPLETE)

        index = self._state.pending_index(candidate.external_id)
        if index < 0:
            self._on_stale(candidate.external_id)
            return None
        removed = self._state.pending[index]
        temp_id = f"{TEMP_ID_PREFIX}{self._ids.new_id()}"

        def mutate(state: LocalState) -> None:
            state.add_task(replace(draft, id=temp_id))
            state.remove_pending(candidate.external_id)
            self._clamp_after_removal()

        tx = Transaction(self._state, mutate).apply()
        self._persist_pending()

        try:
            created = await self._tasks.create(draft)
        except DomainError as e:
            logger.error(f"Failed to approve {candidate.external_id}: {e}")
            if tx.untouched:
                tx.rollback()
                self._reselect()
                self._persist_pending()
            else:
                # other reducers ran during the write; keep their effects
                self._state.remove_task(temp_id)
                self._put_back(index, removed, tx.before.review_index)
            raise

        if not self._state.replace_task(temp_id, created) and self._state.find_task(created.id) is None:
            # the task list was reloaded meanwhile
            self._state.add_task(created)
        return created

    async def auto_approve_submitted(self, items: Sequence[CandidateAssignment]) -> int:
        """Already-submitted work goes straight in as complete; failures are only logged."""
        if not items:
            return 0

        async def one(item: CandidateAssignment, draft: Task) -> bool:
            temp_id = f"{TEMP_ID_PREFIX}auto-{self._ids.new_id()}"
            self._state.add_task(replace(draft, id=temp_id))
            try:
                created = await self._tasks.create(draft)
            except DomainError as e:
                logger.error(f"Failed to auto-approve submitted item {item.external_id}: {e}")
                self._state.remove_task(temp_id)
                return False
            if not self._state.replace_task(temp_id, created) and self._state.find_task(created.id) is None:
                self._state.add_task(created)
            if self._notifier is not None:
                self._notifier.info(f'"{item.title}" added as complete')
            return True

        form = ApprovalForm(task_type=TASK_TYPE_ASSIGNMENT)
        drafts = []
        for item in items:
            try:
                drafts.append((item, self._build_task(item, form, TASK_STATUS_COMPLETE)))
            except DomainError as e:
                logger.warning(f"Not auto-approving {item.external_id}: {e}")

        # shielded: a cancelled fetch must not strand a placeholder without its stored task
        work = asyncio.gather(*(one(item, draft) for item, draft in drafts))
        self._background.add(work)
        work.add_done_callback(self._background.discard)
        results = await asyncio.shield(work)
        return sum(1 for ok in results if ok)

    # ----- reject -----

    def reject(self, candidate: CandidateAssignment) -> Optional[UndoHandle]:
        external_id = candidate.external_id
        index = self._state.pending_index(external_id)
        if index < 0:
            self._on_stale(external_id)
            return None
        removed = self._state.pending[index]

        def mutate(state: LocalState) -> None:
            state.remove_pending(external_id)
            self._clamp_after_removal()

        tx = Transaction(self._state, mutate).apply()
        self._persist_pending()
        before_index = tx.before.review_index if tx.before else -1
        self._rejecting.add(external_id)

        async def commit() -> None:
            try:
                await self._rejections.add(external_id)
            except DomainError as e:
                logger.error(f"Failed to reject item {external_id}: {e}")
                self._rejecting.discard(external_id)
                self._put_back(index, removed, before_index)
                self._report(f'Failed to reject "{removed.title}".')
                return
            self._rejecting.discard(external_id)
            # a refetch or rollback may have listed it again during the window
            self._drop_pending(external_id)

        token = self._scheduler.schedule_once(self._undo_seconds, commit)

        def restore() -> None:
            self._rejecting.discard(external_id)
            if self._state.pending_index(external_id) >= 0:
                return
            fresh = replace(removed, pending_key=f"{RESTORE_KEY_PREFIX}{self._ids.new_id()}")
            at = self._state.insert_pending(index, fresh)
            if before_index >= 0:
                self._state.set_review_index(at)
                self._selected_id = external_id
            self._persist_pending()

        return UndoHandle(token, restore, label=f'Rejected "{removed.title}"')

    # ----- internals -----

    def _build_task(self, candidate: CandidateAssignment, form: ApprovalForm, status: str) -> Task:
        if form.category_id is None:
            category = self._state.category_for_course(candidate.course_id)
            category_id = category.id if category else None
        else:
            category_id = form.category_id or None

        task = Task(
            id="",
            title=candidate.title,
            due_date=form.due_date or candidate.due_date,
            category_id=category_id,
            task_type=form.task_type or (TASK_TYPE_QUIZ if candidate.is_quiz else TASK_TYPE_ASSIGNMENT),
            status=status,
            notes=form.notes,
            url=form.url or candidate.url,
            description=candidate.description,
            external_id=candidate.external_id,
            points_possible=candidate.points_possible,
            due_date_override=form.due_date_override,
        )
        validate_task(task)
        return task

    def _clamp_after_removal(self) -> None:
        remaining = self._state.pending
        if not remaining:
            self._state.set_review_index(-1)
            self._selected_id = None
            return
        index = self._state.review_index
        if index >= len(remaining):
            index = len(remaining) - 1
            self._state.set_review_index(index)
        self._selected_id = remaining[index].external_id if index >= 0 else None

    def _put_back(self, index: int, item: CandidateAssignment, review_index: int) -> None:
        if self._state.pending_index(item.external_id) < 0:
            self._state.insert_pending(index, item)
        self._state.set_review_index(min(review_index, len(self._state.pending) - 1))
        self._reselect()
        self._persist_pending()

    def _drop_pending(self, external_id: str) -> None:
        if self._state.remove_pending(external_id) < 0:
            return
        self._follow_selection()
        if self._state.review_index >= len(self._state.pending):
            self._clamp_review()
        self._persist_pending()

    def _reselect(self) -> None:
        item = self.current
        self._selected_id = item.external_id if item else None

    def _follow_selection(self) -> None:
        try:
            self._locate_selected()
        except StaleStateError as e:
            logger.debug(f"Reviewed item vanished: {e}")
            self._clamp_review()

    def _locate_selected(self) -> None:
        if self._state.review_index == -1:
            self._selected_id = None
            return
        if not self._state.pending:
            self._state.set_review_index(-1)
            self._selected_id = None
            return
        if self._selected_id is None:
            return
        index = self._state.pending_index(self._selected_id)
        if index < 0:
            raise StaleStateError(self._selected_id)
        if index != self._state.review_index:
            self._state.set_review_index(index)

    def _clamp_review(self) -> None:
        count = len(self._state.pending)
        index = min(self._state.review_index, count - 1)
        self._state.set_review_index(index)
        self._reselect()

    def _on_stale(self, external_id: str) -> None:
        logger.debug("Candidate %s is no longer pending", external_id)
        self._clamp_review()

    def _persist_pending(self) -> None:
        pending = self._state.pending
        if pending:
            set_json(self._kv, PENDING_CACHE_KEY, [item.to_dict() for item in pending])
        else:
            self._kv.remove(PENDING_CACHE_KEY)

    def _report(self, message: str) -> None:
        if self._notifier is not None:
            self._notifier.error(message)
