"""
Local-only dataset kept in the key-value store.
"""
from __future__ import annotations

from duesync.domain.tasks.models import Category, UserSettings
from duesync.infra.kv.file_store import FileKeyValueStore
from duesync.infra.kv.guest_storage import GUEST_KEYS, GuestStorage
from duesync.infra.kv.memory_store import MemoryKeyValueStore
from tests.fakes import FixedClock, SequentialIds, make_task


def test_session_id_is_created_once():
    storage = GuestStorage(MemoryKeyValueStore())
    ids = SequentialIds("s")
    first = storage.ensure_session(ids, FixedClock())
    assert storage.ensure_session(ids, FixedClock()) == first
    assert storage.session_id() == "s-1"


def test_documents_round_trip_through_json():
    storage = GuestStorage(MemoryKeyValueStore())
    storage.set_tasks([make_task("t1", external_id="1-1", points_possible=5.0)])
    storage.set_categories([Category(id="c1", name="Bio", external_course_id="7")])
    storage.set_settings(UserSettings(lms_url="https://lms.test", lms_token="tok"))

    assert storage.get_tasks()[0].points_possible == 5.0
    assert storage.get_categories()[0].external_course_id == "7"
    assert storage.get_settings().has_credentials
    snap = storage.snapshot()
    assert len(snap.tasks) == 1 and not snap.is_empty


def test_rejected_ids_accept_legacy_string_entries():
    kv = MemoryKeyValueStore()
    kv.set(GUEST_KEYS["rejected"], b'["1-1", {"external_id": "1-2", "rejected_at": "x"}]')
    storage = GuestStorage(kv)
    assert storage.get_rejected_ids() == {"1-1", "1-2"}
    assert storage.add_rejected("1-1", "now") is False
    assert storage.add_rejected("1-3", "now") is True
    storage.remove_rejected("1-1")
    assert storage.get_rejected_ids() == {"1-2", "1-3"}


def test_unreadable_documents_fall_back_to_empty():
    kv = MemoryKeyValueStore()
    kv.set(GUEST_KEYS["tasks"], b"not json")
    kv.set(GUEST_KEYS["settings"], b"[]")
    storage = GuestStorage(kv)
    assert storage.get_tasks() == []
    assert storage.get_settings() == UserSettings()


def test_clear_keeps_session_and_settings(tmp_path):
    kv = FileKeyValueStore(tmp_path / "kv")
    storage = GuestStorage(kv)
    storage.ensure_session(SequentialIds("s"), FixedClock())
    storage.set_tasks([make_task("t1")])
    storage.set_settings(UserSettings(lms_url="u", lms_token="t"))
    storage.add_rejected("1-1", "now")

    storage.clear()

    assert storage.get_tasks() == []
    assert storage.get_rejected_ids() == set()
    assert storage.session_id() == "s-1"
    assert storage.get_settings().lms_token == "t"
