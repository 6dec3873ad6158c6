"""
Single-writer local state: tasks, categories, the pending candidate list and the
review cursor.

Every mutation is a plain synchronous method on LocalState, so on one event loop
optimistic updates and their rollbacks apply one after another and cannot interleave.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from duesync.domain.common.ports import CancelToken
from duesync.domain.tasks.models import Category, Task

if TYPE_CHECKING:
    from duesync.domain.sync.models import CandidateAssignment

logger = logging.getLogger(__name__)

Listener = Callable[["LocalState"], None]


@dataclass(frozen=True)
class StateSnapshot:
    tasks: Tuple[Task, ...]
    pending: Tuple["CandidateAssignment", ...]
    review_index: int


class LocalState:
    def __init__(self) -> None:
        self._tasks: List[Task] = []
        self._categories: List[Category] = []
        self._pending: List["CandidateAssignment"] = []
        self._review_index = -1
        self._version = 0
        self._listeners: List[Listener] = []

    # ----- reads -----

    @property
    def tasks(self) -> Tuple[Task, ...]:
        return tuple(self._tasks)

    @property
    def categories(self) -> Tuple[Category, ...]:
        return tuple(self._categories)

    @property
    def pending(self) -> Tuple["CandidateAssignment", ...]:
        return tuple(self._pending)

    @property
    def review_index(self) -> int:
        return self._review_index

    @property
    def version(self) -> int:
        return self._version

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def task_index(self, task_id: str) -> int:
        for i, task in enumerate(self._tasks):
            if task.id == task_id:
                return i
        return -1

    def pending_index(self, external_id: str) -> int:
        for i, item in enumerate(self._pending):
            if item.external_id == external_id:
                return i
        return -1

    def category_for_course(self, course_id: Optional[str]) -> Optional[Category]:
        if not course_id:
            return None
        for category in self._categories:
            if category.external_course_id == course_id:
                return category
        return None

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(tasks=self.tasks, pending=self.pending, review_index=self._review_index)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    # ----- reducers -----

    def set_tasks(self, tasks: Sequence[Task]) -> None:
        self._tasks = list(tasks)
        self._commit()

    def add_task(self, task: Task) -> None:
        self._tasks.append(task)
        self._commit()

    def replace_task(self, old_id: str, task: Task) -> bool:
        """Swap by id (temporary placeholder id -> confirmed task)."""
        i = self.task_index(old_id)
        if i < 0:
            return False
        self._tasks[i] = task
        self._commit()
        return True

    def update_task(self, task: Task) -> bool:
        return self.replace_task(task.id, task)

    def remove_task(self, task_id: str) -> Optional[Tuple[int, Task]]:
        i = self.task_index(task_id)
        if i < 0:
            return None
        task = self._tasks.pop(i)
        self._commit()
        return i, task

    def insert_task(self, index: int, task: Task) -> int:
        index = max(0, min(index, len(self._tasks)))
        self._tasks.insert(index, task)
        self._commit()
        return index

    def remove_tasks_in_category(self, category_id: str) -> int:
        before = len(self._tasks)
        self._tasks = [t for t in self._tasks if t.category_id != category_id]
        removed = before - len(self._tasks)
        if removed:
            self._commit()
        return removed

    def set_categories(self, categories: Sequence[Category]) -> None:
        self._categories = list(categories)
        self._commit()

    def remove_category(self, category_id: str) -> None:
        self._categories = [c for c in self._categories if c.id != category_id]
        self._commit()

    def set_pending(self, items: Sequence["CandidateAssignment"]) -> None:
        self._pending = list(items)
        self._commit()

    def remove_pending(self, external_id: str) -> int:
        i = self.pending_index(external_id)
        if i >= 0:
            self._pending.pop(i)
            self._commit()
        return i

    def insert_pending(self, index: int, item: "CandidateAssignment") -> int:
        index = max(0, min(index, len(self._pending)))
        self._pending.insert(index, item)
        self._commit()
        return index

    def set_review_index(self, index: int) -> None:
        self._review_index = index
        self._commit()

    def restore(self, snap: StateSnapshot) -> None:
        self._tasks = list(snap.tasks)
        self._pending = list(snap.pending)
        self._review_index = snap.review_index
        self._commit()

    def _commit(self) -> None:
        self._version += 1
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                # a broken observer must not undo a committed reducer
                logger.error(f"State listener failed: {e}", exc_info=True)


class Transaction:
    """
    One optimistic mutation: before is captured on apply(), rollback() puts the
    tasks, pending list and review index back exactly as they were.

    Only roll back while untouched holds; once another reducer has committed, the
    snapshot would also revert that change and the caller has to undo its own
    mutation piecewise.
    """

    def __init__(self, state: LocalState, mutate: Callable[[LocalState], None]) -> None:
        self._state = state
        self._mutate = mutate
        self.before: Optional[StateSnapshot] = None
        self._applied_version: Optional[int] = None

    @property
    def untouched(self) -> bool:
        """True while nothing else has changed the state since apply()."""
        return self._applied_version is not None and self._state.version == self._applied_version

    def apply(self) -> "Transaction":
        if self.before is not None:
            raise RuntimeError("Transaction already applied")
        self.before = self._state.snapshot()
        self._mutate(self._state)
        self._applied_version = self._state.version
        return self

    def rollback(self) -> None:
        if self.before is None:
            raise RuntimeError("Transaction was never applied")
        self._state.restore(self.before)


class UndoHandle:
    """Returned by delayed, undoable actions (reject, delete)."""

    def __init__(self, token: CancelToken, on_undo: Callable[[], None], label: str = "") -> None:
        self._token = token
        self._on_undo = on_undo
        self.label = label

    @property
    def token(self) -> CancelToken:
        return self._token

    @property
    def can_undo(self) -> bool:
        return self._token.pending

    def undo(self) -> bool:
        """False once the delayed write has started (the action stays in effect)."""
        if not self._token.cancel():
            return False
        self._on_undo()
        return True
