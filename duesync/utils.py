"""
Small async and storage helpers shared by the domain services.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

from duesync.domain.common.ports import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_limit(items: Sequence[T], limit: int, mapper: Callable[[T], Awaitable[R]]) -> List[R]:
    """
    Run mapper over items with at most `limit` calls in flight.

    results[i] always belongs to items[i], whatever the completion order. If one call
    raises, the others are cancelled and the error propagates.
    """
    if limit < 1:
        raise ValueError("limit must be >= 1")
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R:
        async with semaphore:
            return await mapper(item)

    tasks = [asyncio.ensure_future(run(item)) for item in items]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        raise


def get_json(store: KeyValueStore, key: str, fallback: Any = None) -> Any:
    raw = store.get(key)
    if not raw:
        return fallback
    try:
        return json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning("Failed to parse stored JSON for key=%s: %s", key, e)
        return fallback


def set_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False).encode("utf-8"))
