"""
Course -> category linking and creation.
"""
from __future__ import annotations

import asyncio
import random

from duesync.constants import CATEGORY_PALETTE
from duesync.domain.common.errors import PersistenceError
from duesync.domain.sync.categories import CategoryResolver
from duesync.domain.sync.models import CourseRef
from duesync.domain.tasks.models import Category
from tests.fakes import MemoryCategoryRepo


def _ensure(repo, courses):
    async def run():
        resolver = CategoryResolver(repo, rng=random.Random(1))
        return await resolver.ensure(courses, await repo.list())

    return asyncio.run(run())


def test_linked_course_is_left_alone():
    repo = MemoryCategoryRepo()
    repo.seed(Category(id="c1", name="Biology", external_course_id="7"))
    assert _ensure(repo, [CourseRef("7", "Biology 101")]) is False
    assert len(repo.rows) == 1


def test_unlinked_category_with_same_name_gets_linked_case_insensitively():
    repo = MemoryCategoryRepo()
    repo.seed(Category(id="c1", name="biology"))
    assert _ensure(repo, [CourseRef("7", "Biology")]) is True
    assert repo.rows["c1"].external_course_id == "7"
    assert len(repo.rows) == 1


def test_missing_course_gets_a_new_category_with_palette_color():
    repo = MemoryCategoryRepo()
    assert _ensure(repo, [CourseRef("7", "Biology"), CourseRef("8", "Physics")]) is True
    created = sorted(repo.rows.values(), key=lambda c: c.external_course_id)
    assert [c.name for c in created] == ["Biology", "Physics"]
    assert all(c.color in CATEGORY_PALETTE for c in created)


def test_name_match_ignores_categories_linked_to_another_course():
    repo = MemoryCategoryRepo()
    repo.seed(Category(id="c1", name="Biology", external_course_id="1"))
    _ensure(repo, [CourseRef("7", "Biology")])
    assert repo.rows["c1"].external_course_id == "1"
    assert len(repo.rows) == 2


def test_one_failed_create_does_not_stop_the_rest():
    repo = MemoryCategoryRepo()
    repo.faults.fail_on("create", PersistenceError("disk full"))
    changed = _ensure(repo, [CourseRef("7", "Biology"), CourseRef("8", "Physics")])
    assert changed is True
    assert [c.external_course_id for c in repo.rows.values()] == ["8"]
