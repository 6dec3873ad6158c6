from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from duesync.constants import DEFAULT_SUBMISSION_CONCURRENCY, TASK_STATUS_COMPLETE
from duesync.domain.common.errors import DomainError, FetchError
from duesync.domain.common.ports import Cache
from duesync.domain.common.time import same_due
from duesync.domain.sync.models import CandidateAssignment, ReconcileReport, split_external_id
from duesync.domain.sync.ports import LmsClient
from duesync.domain.tasks.models import Category, Task
from duesync.domain.tasks.rules import can_auto_complete
from duesync.domain.tasks.service import TaskService
from duesync.utils import map_limit

logger = logging.getLogger(__name__)


def suppress(
    candidates: Iterable[CandidateAssignment],
    tasks: Iterable[Task],
    rejected_ids: Set[str],
) -> List[CandidateAssignment]:
    """
    Hide candidates that already became a task or were rejected. Also drops repeated
    external ids so the same fetch reconciled twice yields the same list.
    """
    handled = {t.external_id for t in tasks if t.external_id}
    handled |= set(rejected_ids)
    out: List[CandidateAssignment] = []
    seen: Set[str] = set()
    for c in candidates:
        if c.external_id in handled or c.external_id in seen:
            continue
        seen.add(c.external_id)
        out.append(c)
    return out


def filter_sync_disabled(
    candidates: Iterable[CandidateAssignment],
    categories: Sequence[Category],
) -> List[CandidateAssignment]:
    by_course = {c.external_course_id: c for c in categories if c.external_course_id}
    # keep when no category matches (new course) or the category syncs
    return [c for c in candidates if c.course_id not in by_course or by_course[c.course_id].sync_enabled]


def due_date_drift(
    candidates: Iterable[CandidateAssignment],
    tasks: Iterable[Task],
) -> List[Tuple[Task, str]]:
    by_id = {c.external_id: c for c in candidates}
    updates: List[Tuple[Task, str]] = []
    for task in tasks:
        if not task.external_id or task.due_date_override:
            continue
        candidate = by_id.get(task.external_id)
        if candidate is None or not candidate.due_date:
            continue
        if not same_due(task.due_date, candidate.due_date):
            updates.append((task, candidate.due_date))
    return updates


def quiz_targets(
    candidates: Iterable[CandidateAssignment],
    tasks: Iterable[Task],
) -> List[Tuple[Task, str, str]]:
    by_id = {c.external_id: c for c in candidates}
    targets: List[Tuple[Task, str, str]] = []
    for task in tasks:
        if not task.external_id:
            continue
        candidate = by_id.get(task.external_id)
        if candidate is None or not candidate.is_quiz:
            continue
        if not can_auto_complete(task):
            continue
        ids = split_external_id(task.external_id)
        if ids:
            targets.append((task, ids[0], ids[1]))
    return targets


class Reconciler:
    """
    Aligns local tasks with a fresh fetch: due dates follow the LMS unless pinned,
    quizzes with a submission are marked complete unless the status is pinned.
    Updates go through TaskService like any user edit.
    """

    def __init__(
        self,
        tasks: TaskService,
        client: LmsClient,
        submissions: Cache,
        concurrency: int = DEFAULT_SUBMISSION_CONCURRENCY,
    ) -> None:
        self._tasks = tasks
        self._client = client
        self._submissions = submissions
        self._concurrency = concurrency

    async def reconcile(self, all_candidates: Sequence[CandidateAssignment]) -> ReconcileReport:
        """all_candidates must be the unsuppressed list: approved items are reconciled too."""
        if not all_candidates:
            return ReconcileReport()
        current = self._tasks.state.tasks
        if not current:
            return ReconcileReport()

        moved = 0
        for task, due_date in due_date_drift(all_candidates, current):
            if await self._apply(task, {"due_date": due_date}):
                moved += 1
        if moved:
            logger.info("Propagated %d due date change(s) from the LMS", moved)

        # re-read: the date pass replaced some task objects
        targets = quiz_targets(all_candidates, self._tasks.state.tasks)
        completed = 0
        if targets:
            submissions = await map_limit(targets, self._concurrency, self._submission_for)
            for (task, _, _), submission in zip(targets, submissions):
                if submission and submission.get("submitted_at"):
                    if await self._apply(task, {"status": TASK_STATUS_COMPLETE}):
                        completed += 1
        if completed:
            logger.info("Auto-completed %d quiz task(s) with a submission", completed)

        return ReconcileReport(due_date_updates=moved, auto_completed=completed)

    async def _submission_for(self, target: Tuple[Task, str, str]) -> Optional[Dict[str, Any]]:
        task, course_id, assignment_id = target
        key = f"{course_id}-{assignment_id}"
        cached = self._submissions.get(key)
        if cached is not None:
            return cached
        try:
            submission = await self._client.get_submission(course_id, assignment_id)
        except FetchError as e:
            logger.warning(f"Failed to fetch submission for {key}: {e}")
            return None
        self._submissions.set(key, submission)
        return submission

    async def _apply(self, task: Task, changes: Dict[str, Any]) -> bool:
        try:
            await self._tasks.update_task(task.id, changes)
            return True
        except DomainError as e:
            logger.error(f"Failed to reconcile task {task.id} ({task.external_id}): {e}")
            return False
