from __future__ import annotations

import uuid

from duesync.domain.common.ports import IdGenerator


class UuidGenerator(IdGenerator):
    """Random v4 ids for rows, placeholder tasks, render keys and local sessions."""

    def __init__(self, compact: bool = False) -> None:
        # compact: 32 hex chars without dashes
        self._compact = compact

    def new_id(self) -> str:
        value = uuid.uuid4()
        return value.hex if self._compact else str(value)
