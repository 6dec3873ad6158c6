"""
Single-writer state container, transactions and undo handles.
"""
from __future__ import annotations

import pytest

from duesync.domain.common.ports import CancelToken
from duesync.domain.tasks.state import LocalState, Transaction, UndoHandle
from tests.fakes import make_candidate, make_task


def test_transaction_rollback_restores_exact_snapshot():
    state = LocalState()
    state.set_tasks([make_task("a"), make_task("b")])
    state.set_pending([make_candidate("1", "1"), make_candidate("1", "2")])
    state.set_review_index(1)
    before = state.snapshot()

    def mutate(s):
        s.remove_task("a")
        s.add_task(make_task("temp-1"))
        s.remove_pending("1-2")
        s.set_review_index(0)

    tx = Transaction(state, mutate).apply()
    assert state.snapshot() != before
    tx.rollback()
    assert state.snapshot() == before


def test_transaction_cannot_apply_twice_or_roll_back_unapplied():
    state = LocalState()
    tx = Transaction(state, lambda s: None)
    with pytest.raises(RuntimeError):
        tx.rollback()
    tx.apply()
    with pytest.raises(RuntimeError):
        tx.apply()


def test_transaction_is_untouched_until_another_reducer_commits():
    state = LocalState()
    state.set_pending([make_candidate("1", "1"), make_candidate("1", "2")])
    tx = Transaction(state, lambda s: s.remove_pending("1-1"))
    assert tx.untouched is False
    tx.apply()
    assert tx.untouched is True
    state.remove_pending("1-2")
    assert tx.untouched is False


def test_reducers_bump_version_and_notify_listeners():
    state = LocalState()
    seen = []
    state.subscribe(lambda s: seen.append(s.version))
    state.add_task(make_task("a"))
    state.replace_task("a", make_task("a", title="Renamed"))
    assert seen == [1, 2]
    assert state.find_task("a").title == "Renamed"


def test_broken_listener_does_not_block_the_reducer():
    state = LocalState()

    def broken(_):
        raise ValueError("render failed")

    state.subscribe(broken)
    state.add_task(make_task("a"))
    assert state.find_task("a") is not None


def test_insert_clamps_index():
    state = LocalState()
    state.set_pending([make_candidate("1", "1")])
    assert state.insert_pending(10, make_candidate("1", "2")) == 1
    assert state.insert_task(-3, make_task("x")) == 0


def test_undo_handle_is_single_use():
    undone = []
    handle = UndoHandle(CancelToken(), lambda: undone.append(True), label="Rejected")
    assert handle.undo() is True
    assert handle.undo() is False
    assert undone == [True]

    fired = CancelToken()
    fired.claim()
    assert UndoHandle(fired, lambda: undone.append(True)).undo() is False
    assert undone == [True]
