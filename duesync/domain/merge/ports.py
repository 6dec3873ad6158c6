from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from duesync.domain.merge.models import MergeRequest, MergeResult


class MergeEndpoint(ABC):
    """Receives the whole local dataset in one call (remote side of the merge)."""

    @abstractmethod
    async def merge(self, request: MergeRequest) -> MergeResult: ...


class LocalDataset(ABC):
    """The anonymous, local-only dataset that gets merged into an account."""

    @abstractmethod
    def session_id(self) -> Optional[str]: ...

    @abstractmethod
    def snapshot(self) -> MergeRequest:
        """Tasks, categories and settings; resolutions left empty."""

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def merged_session_id(self) -> Optional[str]: ...

    @abstractmethod
    def mark_merged(self, session_id: Optional[str]) -> None: ...
