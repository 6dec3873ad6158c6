from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from duesync.domain.common.ports import KeyValueStore

logger = logging.getLogger(__name__)


class FileKeyValueStore(KeyValueStore):
    """
    One file per key under a directory. Writes go to a temp file and are renamed
    into place, so a reader never sees half a value.
    """

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._dir / quote(key, safe="")

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(value)
        os.replace(tmp, path)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            logger.debug("remove(%s): no such key", key)
