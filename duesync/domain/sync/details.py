from __future__ import annotations

import logging
from typing import Any, Dict

from duesync.domain.common.ports import Cache
from duesync.domain.sync.models import AssignmentDetail
from duesync.domain.sync.ports import LmsClient

logger = logging.getLogger(__name__)


def detail_from_payload(assignment: Dict[str, Any]) -> AssignmentDetail:
    quiz_id = assignment.get("quiz_id")
    return AssignmentDetail(
        assignment_id=str(assignment.get("id", "")),
        name=assignment.get("name") or "",
        description=assignment.get("description"),
        submission_types=list(assignment.get("submission_types") or []),
        allowed_extensions=list(assignment.get("allowed_extensions") or []),
        locked_for_user=bool(assignment.get("locked_for_user")),
        lock_explanation=assignment.get("lock_explanation"),
        quiz_id=str(quiz_id) if quiz_id is not None else None,
        due_at=assignment.get("due_at"),
    )


class AssignmentDetails:
    """Assignment detail lookups, cached per "<course>-<assignment>"."""

    def __init__(self, client: LmsClient, cache: Cache) -> None:
        self._client = client
        self._cache = cache

    async def get(self, course_id: str, assignment_id: str) -> AssignmentDetail:
        key = f"{course_id}-{assignment_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        payload = await self._client.get_assignment(course_id, assignment_id)
        detail = detail_from_payload(payload)
        self._cache.set(key, detail)
        logger.debug("Cached assignment detail %s", key)
        return detail

    def invalidate(self, course_id: str, assignment_id: str) -> None:
        self._cache.expire(f"{course_id}-{assignment_id}")
