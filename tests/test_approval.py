"""
Approve / reject with optimistic updates, rollback and timed undo.
"""
from __future__ import annotations

import asyncio

import pytest

from duesync.constants import PENDING_CACHE_KEY, RESTORE_KEY_PREFIX, TASK_STATUS_COMPLETE, TASK_STATUS_INCOMPLETE
from duesync.domain.common.errors import ConflictError, PersistenceError, ValidationError
from duesync.domain.sync.approval import ApprovalForm, ApprovalWorkflow
from duesync.domain.tasks.models import Category
from duesync.domain.tasks.state import LocalState
from duesync.infra.kv.memory_store import MemoryKeyValueStore
from duesync.utils import get_json
from tests.fakes import (
    ManualScheduler,
    MemoryRejectionRepo,
    MemoryTaskRepo,
    RecordingNotifier,
    SequentialIds,
    make_candidate,
)


class Env:
    def __init__(self, pending=(), kv=None):
        self.state = LocalState()
        self.tasks = MemoryTaskRepo()
        self.rejections = MemoryRejectionRepo()
        self.kv = kv or MemoryKeyValueStore()
        self.scheduler = ManualScheduler()
        self.notifier = RecordingNotifier()
        self.workflow = ApprovalWorkflow(
            self.state,
            self.tasks,
            self.rejections,
            self.kv,
            self.scheduler,
            SequentialIds("tmp"),
            self.notifier,
            undo_seconds=7,
        )
        if pending:
            self.workflow.replace_pending(list(pending))

    def pending_ids(self):
        return [c.external_id for c in self.state.pending]

    def cached_ids(self):
        return [entry["external_id"] for entry in get_json(self.kv, PENDING_CACHE_KEY, [])]


A, B, C = make_candidate("1", "1"), make_candidate("1", "2"), make_candidate("1", "3")


# ----- approve -----


def test_approve_creates_task_and_removes_candidate():
    env = Env([A, B, C])
    env.state.set_categories([Category(id="cat-1", name="Course 1", external_course_id="1")])
    env.workflow.open_review("1-2")

    created = asyncio.run(env.workflow.approve(B))

    assert created.external_id == "1-2"
    assert created.status == TASK_STATUS_INCOMPLETE
    assert created.category_id == "cat-1"
    assert env.pending_ids() == ["1-1", "1-3"]
    assert env.cached_ids() == ["1-1", "1-3"]
    # cursor now shows the next item
    assert env.workflow.current.external_id == "1-3"
    # placeholder swapped for the stored task
    assert [t.id for t in env.state.tasks] == [created.id]
    assert created.id in env.tasks.rows


def test_approve_applies_form_edits():
    env = Env([A])
    form = ApprovalForm(due_date="2025-04-01", category_id="", task_type="exam", notes="bring calculator", due_date_override=True)
    created = asyncio.run(env.workflow.approve(A, form))
    assert created.due_date == "2025-04-01"
    assert created.category_id is None
    assert created.task_type == "exam"
    assert created.notes == "bring calculator"
    assert created.due_date_override is True


def test_quiz_candidate_becomes_quiz_task():
    env = Env([make_candidate("1", "9", quiz_id="4")])
    created = asyncio.run(env.workflow.approve(env.state.pending[0]))
    assert created.task_type == "quiz"


def test_failed_approve_restores_exact_snapshot():
    env = Env([A, B, C])
    env.workflow.open_review("1-2")
    before = env.state.snapshot()
    env.tasks.faults.fail_on("create", ConflictError("duplicate"))

    with pytest.raises(ConflictError):
        asyncio.run(env.workflow.approve(B))

    assert env.state.snapshot() == before
    assert env.cached_ids() == ["1-1", "1-2", "1-3"]
    assert env.workflow.current.external_id == "1-2"
    assert env.tasks.rows == {}


def test_failed_approve_keeps_a_reject_made_during_the_write():
    env = Env([A, B, C])

    async def run():
        gate = env.tasks.faults.hold("create")
        env.tasks.faults.fail_on("create", PersistenceError("offline"))
        approving = asyncio.ensure_future(env.workflow.approve(B))
        await asyncio.sleep(0)
        env.workflow.reject(C)
        gate.set()
        with pytest.raises(PersistenceError):
            await approving

    asyncio.run(run())

    assert env.pending_ids() == ["1-1", "1-2"]
    assert env.state.tasks == ()
    assert env.cached_ids() == ["1-1", "1-2"]

    assert asyncio.run(env.scheduler.advance(7)) == 1
    assert env.pending_ids() == ["1-1", "1-2"]
    assert list(env.rejections.rows) == ["1-3"]


def test_invalid_form_fails_before_any_mutation():
    env = Env([A])
    before = env.state.snapshot()
    version = env.state.version
    with pytest.raises(ValidationError):
        asyncio.run(env.workflow.approve(A, ApprovalForm(due_date="someday")))
    assert env.state.snapshot() == before
    assert env.state.version == version


def test_approving_a_vanished_candidate_is_a_no_op():
    env = Env([A])
    assert asyncio.run(env.workflow.approve(B)) is None
    assert env.tasks.faults.calls["create"] == 0
    assert env.pending_ids() == ["1-1"]


def test_approve_last_item_clears_cursor_and_cache():
    env = Env([A])
    env.workflow.open_review("1-1")
    asyncio.run(env.workflow.approve(A))
    assert env.state.review_index == -1
    assert env.workflow.current is None
    assert env.kv.get(PENDING_CACHE_KEY) is None


def test_auto_approve_submitted_creates_complete_tasks():
    env = Env()
    submitted = [make_candidate("1", "1", has_submitted=True, quiz_id="3"), make_candidate("1", "2", has_submitted=True)]
    env.tasks.faults.fail_on("create", PersistenceError("locked"))

    count = asyncio.run(env.workflow.auto_approve_submitted(submitted))

    assert count == 1
    assert len(env.state.tasks) == 1
    task = env.state.tasks[0]
    assert task.status == TASK_STATUS_COMPLETE
    assert task.task_type == "assignment"
    assert not task.id.startswith("temp-")
    assert len(env.notifier.infos) == 1


# ----- reject + undo -----


def test_undo_within_window_restores_item_and_writes_nothing():
    five_six = make_candidate("5", "6")
    env = Env([A, five_six])

    handle = env.workflow.reject(five_six)
    assert env.pending_ids() == ["1-1"]
    assert handle.can_undo

    assert handle.undo() is True
    assert "5-6" in env.pending_ids()
    assert asyncio.run(env.scheduler.advance(60)) == 0
    assert env.rejections.rows == {}
    assert env.cached_ids() == ["1-1", "5-6"]


def test_restored_item_gets_a_fresh_render_key():
    env = Env([A])
    handle = env.workflow.reject(A)
    handle.undo()
    assert env.state.pending[0].pending_key.startswith(RESTORE_KEY_PREFIX)


def test_undo_after_window_is_a_no_op():
    env = Env([A, B])
    handle = env.workflow.reject(B)

    assert asyncio.run(env.scheduler.advance(7)) == 1
    assert "1-2" in env.rejections.rows

    assert handle.can_undo is False
    assert handle.undo() is False
    assert env.pending_ids() == ["1-1"]


def test_reject_is_written_only_after_the_window():
    env = Env([A])
    env.workflow.reject(A)
    asyncio.run(env.scheduler.advance(6))
    assert env.rejections.rows == {}
    asyncio.run(env.scheduler.advance(1))
    assert list(env.rejections.rows) == ["1-1"]


def test_failed_delayed_reject_puts_item_back_and_notifies():
    env = Env([A, B, C])
    env.workflow.open_review("1-2")
    env.rejections.faults.fail_on("add", PersistenceError("offline"))

    env.workflow.reject(B)
    assert env.pending_ids() == ["1-1", "1-3"]
    asyncio.run(env.scheduler.advance(7))

    assert env.pending_ids() == ["1-1", "1-2", "1-3"]
    assert env.workflow.current.external_id == "1-2"
    assert env.cached_ids() == ["1-1", "1-2", "1-3"]
    assert len(env.notifier.errors) == 1


def test_reject_of_vanished_candidate_returns_none():
    env = Env([A])
    assert env.workflow.reject(B) is None
    assert env.scheduler.pending_count == 0


def test_undo_restores_review_cursor_when_a_review_was_open():
    env = Env([A, B])
    env.workflow.open_review("1-2")
    handle = env.workflow.reject(B)
    assert env.workflow.current.external_id == "1-1"
    handle.undo()
    assert env.workflow.current.external_id == "1-2"


# ----- pending list + cursor -----


def test_refetch_keeps_the_reviewed_item_selected():
    env = Env([A, B, C])
    env.workflow.open_review("1-2")
    env.workflow.replace_pending([make_candidate("1", "0"), C, A, B])
    assert env.workflow.current.external_id == "1-2"
    assert env.state.review_index == 3


def test_refetch_without_the_reviewed_item_clamps_the_cursor():
    env = Env([A, B, C])
    env.workflow.open_review("1-3")
    env.workflow.replace_pending([A])
    assert env.state.review_index == 0
    assert env.workflow.current.external_id == "1-1"


def test_refetch_with_empty_list_closes_review():
    env = Env([A])
    env.workflow.open_review("1-1")
    env.workflow.replace_pending([])
    assert env.state.review_index == -1
    assert env.kv.get(PENDING_CACHE_KEY) is None


def test_navigate_stays_in_bounds():
    env = Env([A, B])
    env.workflow.open_review("1-1")
    assert env.workflow.navigate(-1) == 0
    assert env.workflow.navigate(1) == 1
    assert env.workflow.navigate(1) == 1
    env.workflow.close_review()
    assert env.workflow.current is None


def test_restore_pending_reads_the_cache():
    env = Env([A, B])
    fresh = Env(kv=env.kv)
    items = fresh.workflow.restore_pending()
    assert [c.external_id for c in items] == ["1-1", "1-2"]
    assert fresh.pending_ids() == ["1-1", "1-2"]


# ----- undo window bookkeeping -----


def test_rejecting_tracks_ids_until_undo_or_write():
    env = Env([A, B])
    handle = env.workflow.reject(A)
    assert env.workflow.rejecting == {"1-1"}
    handle.undo()
    assert env.workflow.rejecting == frozenset()

    env.workflow.reject(B)
    assert env.workflow.rejecting == {"1-2"}
    asyncio.run(env.scheduler.advance(7))
    assert env.workflow.rejecting == frozenset()


def test_item_listed_again_inside_the_window_is_dropped_once_written():
    env = Env([A, B])
    env.workflow.open_review("1-1")
    env.workflow.reject(B)
    env.workflow.replace_pending([A, B])
    assert env.pending_ids() == ["1-1", "1-2"]

    asyncio.run(env.scheduler.advance(7))

    assert env.pending_ids() == ["1-1"]
    assert env.cached_ids() == ["1-1"]
    assert env.workflow.current.external_id == "1-1"
    assert list(env.rejections.rows) == ["1-2"]


def test_dropping_the_reviewed_item_clamps_the_cursor():
    env = Env([A, B])
    env.workflow.reject(B)
    env.workflow.replace_pending([A, B])
    env.workflow.open_review("1-2")

    asyncio.run(env.scheduler.advance(7))

    assert env.pending_ids() == ["1-1"]
    assert env.state.review_index == 0
