from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Dict, Optional, Sequence, Union

from duesync.constants import DEFAULT_UNDO_SECONDS, TASK_STATUS_COMPLETE, TASK_STATUS_INCOMPLETE
from duesync.domain.common.errors import DomainError, NotFoundError
from duesync.domain.common.ports import Notifier, Scheduler
from duesync.domain.common.time import has_time_component
from duesync.domain.tasks.models import Category, Task
from duesync.domain.tasks.ports import CategoryRepository, TaskRepository
from duesync.domain.tasks.rules import can_auto_complete, validate_changes, validate_status, validate_task
from duesync.domain.tasks.state import LocalState, UndoHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MoveResult:
    task: Task
    # linked to the LMS and not pinned: the next fetch will put the old date back
    will_resync: bool


class TaskService:
    """
    Task store operations over LocalState + the backing repositories.
    No httpx. No sqlite.
    """

    def __init__(
        self,
        state: LocalState,
        tasks: TaskRepository,
        categories: CategoryRepository,
        scheduler: Scheduler,
        notifier: Optional[Notifier] = None,
        undo_seconds: float = DEFAULT_UNDO_SECONDS,
    ) -> None:
        self._state = state
        self._tasks = tasks
        self._categories = categories
        self._scheduler = scheduler
        self._notifier = notifier
        self._undo_seconds = undo_seconds
        self._update_requests: Dict[str, int] = {}

    @property
    def state(self) -> LocalState:
        return self._state

    async def load(self) -> Sequence[Task]:
        tasks = await self._tasks.list()
        self._state.set_tasks(tasks)
        return tasks

    async def load_categories(self) -> Sequence[Category]:
        categories = await self._categories.list()
        self._state.set_categories(categories)
        return categories

    async def create_task(self, draft: Task) -> Task:
        draft = replace(draft, status=TASK_STATUS_INCOMPLETE)
        validate_task(draft)
        created = await self._tasks.create(draft)
        self._state.add_task(created)
        return created

    async def update_task(self, task_id: str, changes: Dict[str, Any]) -> Optional[Task]:
        """
        PATCH one task. Returns None when a newer update for the same task was issued
        while this one was in flight (its response is stale and is dropped).
        """
        validate_changes(changes)
        request_id = self._update_requests.get(task_id, 0) + 1
        self._update_requests[task_id] = request_id

        updated = await self._tasks.update(task_id, changes)

        if self._update_requests.get(task_id) != request_id:
            logger.debug("Dropping stale update response for task_id=%s", task_id)
            return None
        self._state.update_task(updated)
        return updated

    async def set_status(self, task_id: str, status: str) -> Optional[Task]:
        # user edit: any direction is allowed
        validate_status(status)
        return await self.update_task(task_id, {"status": status})

    async def pin_due_date(self, task_id: str) -> Optional[Task]:
        return await self.update_task(task_id, {"due_date_override": True})

    async def confirm_submission(self, task_id: str) -> bool:
        task = self._state.find_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found.")
        if not can_auto_complete(task):
            return False
        await self.update_task(task_id, {"status": TASK_STATUS_COMPLETE})
        return True

    async def move_task(self, task_id: str, new_date: Union[date, str]) -> MoveResult:
        """Drag-to-reschedule: new calendar day, same time of day, status untouched."""
        task = self._state.find_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found.")

        day = new_date.isoformat() if isinstance(new_date, date) else str(new_date)[:10]
        if has_time_component(task.due_date):
            # keep "THH:MM:SS+offset"
            new_due = day + task.due_date[10:]
        else:
            new_due = day

        if new_due == task.due_date:
            return MoveResult(task=task, will_resync=False)

        updated = await self.update_task(task_id, {"due_date": new_due}) or task
        will_resync = bool(updated.external_id) and not updated.due_date_override
        return MoveResult(task=updated, will_resync=will_resync)

    def delete_task(self, task_id: str) -> UndoHandle:
        removed = self._state.remove_task(task_id)
        if removed is None:
            raise NotFoundError(f"Task {task_id} not found.")
        index, task = removed

        async def commit() -> None:
            try:
                await self._tasks.delete(task_id)
            except NotFoundError:
                logger.debug("Task %s was already gone", task_id)
            except DomainError as e:
                logger.error(f"Failed to delete task {task_id}: {e}", exc_info=True)
                if self._state.task_index(task_id) < 0:
                    self._state.insert_task(index, task)
                self._report(f'Failed to delete "{task.title}".')

        token = self._scheduler.schedule_once(self._undo_seconds, commit)

        def restore() -> None:
            if self._state.task_index(task_id) < 0:
                self._state.insert_task(index, task)

        return UndoHandle(token, restore, label=f'Deleted "{task.title or "Untitled event"}"')

    async def delete_category(self, category_id: str) -> int:
        await self._categories.delete(category_id)
        self._state.remove_category(category_id)
        return self._state.remove_tasks_in_category(category_id)

    def _report(self, message: str) -> None:
        if self._notifier is not None:
            self._notifier.error(message)
