"""
The anonymous (local-only) dataset, kept as JSON documents in the key-value store.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Set

from duesync.domain.common.ports import Clock, IdGenerator, KeyValueStore
from duesync.domain.common.time import to_iso
from duesync.domain.merge.models import MergeRequest
from duesync.domain.merge.ports import LocalDataset
from duesync.domain.tasks.models import Category, Task, UserSettings
from duesync.utils import get_json, set_json

logger = logging.getLogger(__name__)

GUEST_KEYS = {
    "session_id": "guest_session_id",
    "session_created_at": "guest_session_created_at",
    "tasks": "guest_tasks",
    "categories": "guest_categories",
    "settings": "guest_settings",
    "rejected": "guest_rejected_items",
    "pending": "guest_pending_items",
    "last_fetch": "guest_last_fetch_timestamp",
    "merged_session_id": "merged_guest_session_id",
}

# cleared after a successful merge; session and settings stay
DATA_KEYS = ("tasks", "categories", "rejected", "pending", "last_fetch")


def _as_list(value) -> list:
    return value if isinstance(value, list) else []


class GuestStorage(LocalDataset):
    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    # ----- session -----

    def session_id(self) -> Optional[str]:
        raw = self._kv.get(GUEST_KEYS["session_id"])
        return raw.decode("utf-8") if raw else None

    def ensure_session(self, ids: IdGenerator, clock: Clock) -> str:
        current = self.session_id()
        if current:
            return current
        session_id = ids.new_id()
        self._kv.set(GUEST_KEYS["session_id"], session_id.encode("utf-8"))
        self._kv.set(GUEST_KEYS["session_created_at"], to_iso(clock.now()).encode("utf-8"))
        logger.info("Started local session %s", session_id)
        return session_id

    def merged_session_id(self) -> Optional[str]:
        raw = self._kv.get(GUEST_KEYS["merged_session_id"])
        return raw.decode("utf-8") if raw else None

    def mark_merged(self, session_id: Optional[str]) -> None:
        if session_id is None:
            self._kv.remove(GUEST_KEYS["merged_session_id"])
            return
        self._kv.set(GUEST_KEYS["merged_session_id"], session_id.encode("utf-8"))

    # ----- documents -----

    def get_tasks(self) -> List[Task]:
        out = []
        for entry in _as_list(get_json(self._kv, GUEST_KEYS["tasks"], [])):
            try:
                out.append(Task.from_dict(entry))
            except TypeError as e:
                logger.warning(f"Skipping unreadable local task: {e}")
        return out

    def set_tasks(self, tasks: Sequence[Task]) -> None:
        set_json(self._kv, GUEST_KEYS["tasks"], [t.to_dict() for t in tasks])

    def get_categories(self) -> List[Category]:
        out = []
        for entry in _as_list(get_json(self._kv, GUEST_KEYS["categories"], [])):
            try:
                out.append(Category.from_dict(entry))
            except TypeError as e:
                logger.warning(f"Skipping unreadable local category: {e}")
        return out

    def set_categories(self, categories: Sequence[Category]) -> None:
        set_json(self._kv, GUEST_KEYS["categories"], [c.to_dict() for c in categories])

    def get_settings(self) -> UserSettings:
        saved = get_json(self._kv, GUEST_KEYS["settings"], None)
        return UserSettings.from_dict(saved) if isinstance(saved, dict) else UserSettings()

    def set_settings(self, settings: UserSettings) -> None:
        set_json(self._kv, GUEST_KEYS["settings"], settings.to_dict())

    def get_rejected_ids(self) -> Set[str]:
        out = set()
        for item in _as_list(get_json(self._kv, GUEST_KEYS["rejected"], [])):
            # older entries are bare strings
            external_id = item if isinstance(item, str) else (item or {}).get("external_id")
            if external_id:
                out.add(external_id)
        return out

    def add_rejected(self, external_id: str, rejected_at: str) -> bool:
        items = _as_list(get_json(self._kv, GUEST_KEYS["rejected"], []))
        if external_id in self.get_rejected_ids():
            return False
        items.append({"external_id": external_id, "rejected_at": rejected_at})
        set_json(self._kv, GUEST_KEYS["rejected"], items)
        return True

    def remove_rejected(self, external_id: str) -> None:
        items = _as_list(get_json(self._kv, GUEST_KEYS["rejected"], []))
        kept = [
            item
            for item in items
            if (item if isinstance(item, str) else (item or {}).get("external_id")) != external_id
        ]
        set_json(self._kv, GUEST_KEYS["rejected"], kept)

    # ----- merge -----

    def snapshot(self) -> MergeRequest:
        return MergeRequest(
            session_id=self.session_id(),
            tasks=tuple(self.get_tasks()),
            categories=tuple(self.get_categories()),
            settings=self.get_settings(),
        )

    def clear(self) -> None:
        for name in DATA_KEYS:
            self._kv.remove(GUEST_KEYS[name])
