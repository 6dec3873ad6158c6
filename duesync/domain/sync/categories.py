from __future__ import annotations

import logging
import random
from typing import Dict, Optional, Sequence

from duesync.constants import CATEGORY_PALETTE
from duesync.domain.common.errors import DomainError
from duesync.domain.tasks.models import Category
from duesync.domain.tasks.ports import CategoryRepository
from duesync.domain.sync.models import CourseRef

logger = logging.getLogger(__name__)


class CategoryResolver:
    """
    Makes sure every observed course has a category: already linked -> skip,
    unlinked category with the same name (case-insensitive) -> link it,
    otherwise create one with a palette color.
    """

    def __init__(
        self,
        categories: CategoryRepository,
        palette: Sequence[str] = CATEGORY_PALETTE,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._categories = categories
        self._palette = tuple(palette)
        self._rng = rng or random.Random()

    async def ensure(self, courses: Sequence[CourseRef], existing: Sequence[Category]) -> bool:
        """Returns True when anything was linked or created (categories need a reload)."""
        by_course: Dict[str, Category] = {}
        unlinked_by_name: Dict[str, Category] = {}
        for category in existing:
            if category.external_course_id:
                by_course[category.external_course_id] = category
            else:
                unlinked_by_name.setdefault(category.name.lower(), category)

        changed = False
        for course in courses:
            if course.course_id in by_course:
                continue

            match = unlinked_by_name.get(course.name.lower())
            try:
                if match is not None:
                    linked = await self._categories.update(match.id, {"external_course_id": course.course_id})
                    unlinked_by_name.pop(course.name.lower(), None)
                    by_course[course.course_id] = linked
                    logger.info("Linked category %s to course %s", match.id, course.course_id)
                else:
                    created = await self._categories.create(
                        Category(
                            id="",
                            name=course.name,
                            color=self._rng.choice(self._palette),
                            external_course_id=course.course_id,
                        )
                    )
                    by_course[course.course_id] = created
                    logger.info("Created category %r for course %s", course.name, course.course_id)
                changed = True
            except DomainError as e:
                logger.error(f"Failed to link/create category for course {course.course_id}: {e}", exc_info=True)

        return changed
