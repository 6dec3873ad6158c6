from __future__ import annotations

import logging
from dataclasses import replace
from typing import Mapping, Optional, Sequence

from duesync.domain.common.errors import ConflictError
from duesync.domain.merge.detector import preview
from duesync.domain.merge.models import MergePreview, MergeResolution, MergeResult
from duesync.domain.merge.ports import LocalDataset, MergeEndpoint
from duesync.domain.tasks.models import Category, Task

logger = logging.getLogger(__name__)


class MergeFlow:
    """Runs once when a local-only session signs in to an account."""

    def __init__(self, local: LocalDataset, endpoint: MergeEndpoint) -> None:
        self._local = local
        self._endpoint = endpoint

    def needs_merge(self) -> bool:
        session_id = self._local.session_id()
        if session_id is not None and self._local.merged_session_id() == session_id:
            return False
        return not self._local.snapshot().is_empty

    def preview(self, remote_tasks: Sequence[Task], remote_categories: Sequence[Category]) -> MergePreview:
        snap = self._local.snapshot()
        return preview(snap.tasks, remote_tasks, snap.categories, remote_categories)

    async def run(self, resolutions: Optional[Mapping[str, MergeResolution]] = None) -> Optional[MergeResult]:
        """
        Local data is cleared only after the endpoint reports success; any error
        propagates with the local dataset untouched.
        """
        if not self.needs_merge():
            return None

        session_id = self._local.session_id()
        request = replace(self._local.snapshot(), resolutions=dict(resolutions or {}))
        result = await self._endpoint.merge(request)
        if not result.success:
            raise ConflictError("Failed to merge data")

        self._local.clear()
        self._local.mark_merged(session_id)
        logger.info(
            "Local session %s merged: %d task(s), %d categor(ies)",
            session_id,
            result.merged_tasks,
            result.merged_categories,
        )
        return result
