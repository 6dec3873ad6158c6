from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from duesync.constants import DEFAULT_FETCH_CONCURRENCY, SUBMITTED_STATES
from duesync.domain.common.errors import FetchError
from duesync.domain.sync.models import CandidateAssignment, CollectionResult, CourseRef
from duesync.domain.sync.ports import LmsClient
from duesync.utils import map_limit

logger = logging.getLogger(__name__)


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def normalize_assignment(course: Dict[str, Any], assignment: Dict[str, Any]) -> Optional[CandidateAssignment]:
    """None for undated work; a calendar has nowhere to put it."""
    due_at = assignment.get("due_at")
    if not due_at:
        return None
    submission = assignment.get("submission") or {}
    return CandidateAssignment(
        external_id=f"{course['id']}-{assignment['id']}",
        course_id=str(course["id"]),
        title=assignment.get("name") or "",
        due_date=due_at,
        course_name=course.get("name") or "",
        url=assignment.get("html_url"),
        description=assignment.get("description"),
        points_possible=assignment.get("points_possible"),
        quiz_id=_opt_str(assignment.get("quiz_id") or None),
        has_submitted=submission.get("workflow_state") in SUBMITTED_STATES,
        unlock_at=assignment.get("unlock_at") or None,
        locked_for_user=bool(assignment.get("locked_for_user")),
    )


class AssignmentCollector:
    def __init__(self, client: LmsClient, concurrency: int = DEFAULT_FETCH_CONCURRENCY) -> None:
        self._client = client
        self._concurrency = concurrency

    async def collect(self) -> CollectionResult:
        # a failure here (bad credentials, bad URL) is the caller's to classify
        courses = await self._client.list_active_courses()
        logger.info("Collecting assignments for %d active courses", len(courses))

        results = await map_limit(courses, self._concurrency, self._course_assignments)

        candidates: List[CandidateAssignment] = []
        for course, assignments in results:
            for assignment in assignments:
                candidate = normalize_assignment(course, assignment)
                if candidate is not None:
                    candidates.append(candidate)

        seen = set()
        refs: List[CourseRef] = []
        for course in courses:
            course_id = str(course["id"])
            if course_id in seen:
                continue
            seen.add(course_id)
            refs.append(CourseRef(course_id=course_id, name=course.get("name") or ""))

        return CollectionResult(candidates=tuple(candidates), courses=tuple(refs))

    async def _course_assignments(self, course: Dict[str, Any]) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        try:
            return course, await self._client.list_assignments(str(course["id"]))
        except FetchError as e:
            # one broken course must not hide the others
            logger.error(f"Error fetching assignments for course {course.get('id')}: {e}")
            return course, []
