from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class CancelToken:
    """
    Handle for one scheduled call.

    States: pending -> fired | cancelled. Both transitions are one-shot, so whichever
    of cancel() and claim() runs first wins and the other returns False.
    """

    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"

    def __init__(self) -> None:
        self._state = self.PENDING

    @property
    def state(self) -> str:
        return self._state

    @property
    def pending(self) -> bool:
        return self._state == self.PENDING

    def cancel(self) -> bool:
        if self._state != self.PENDING:
            return False
        self._state = self.CANCELLED
        return True

    def claim(self) -> bool:
        """Called by a scheduler immediately before it runs the call."""
        if self._state != self.PENDING:
            return False
        self._state = self.FIRED
        return True


DelayedFn = Callable[[], Awaitable[None]]


class Scheduler(ABC):
    @abstractmethod
    def schedule_once(self, delay_seconds: float, fn: DelayedFn) -> CancelToken: ...


class KeyValueStore(ABC):
    """Durable local store (pending cache, guest data, session bookkeeping)."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]: ...

    @abstractmethod
    def set(self, key: str, value: bytes) -> None: ...

    @abstractmethod
    def remove(self, key: str) -> None: ...


class Cache(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None: ...

    @abstractmethod
    def expire(self, key: str) -> None: ...


class Notifier(ABC):
    """Presentation collaborator for messages nobody is awaiting."""

    @abstractmethod
    def error(self, message: str) -> None: ...

    @abstractmethod
    def info(self, message: str) -> None: ...
