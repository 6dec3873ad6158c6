"""
Duplicate detection between a local (guest) collection and a remote (account) one.

Rules are tried in priority order per local item; a remote item is consumed by the
first local item that matches it and cannot be claimed again.
"""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Set, Tuple, TypeVar

from duesync.constants import RULE_EXTERNAL_ID, RULE_NAME, RULE_TITLE_DATE
from duesync.domain.merge.models import DuplicatePair, MergePreview
from duesync.domain.tasks.models import Category, Task

T = TypeVar("T")

Rule = Tuple[str, Callable[[T], bool], Callable[[T, T], bool]]


def _detect(local: Sequence[T], remote: Sequence[T], rules: Sequence[Rule]) -> List[DuplicatePair[T]]:
    pairs: List[DuplicatePair[T]] = []
    consumed: Set[str] = set()
    for item in local:
        if item is None:
            continue
        for name, applies, matches in rules:
            if not applies(item):
                continue
            hit: Optional[T] = next(
                (r for r in remote if r is not None and r.id not in consumed and matches(item, r)),
                None,
            )
            if hit is not None:
                pairs.append(DuplicatePair(local=item, remote=hit, rule=name))
                consumed.add(hit.id)
                break
    return pairs


TASK_RULES: Sequence[Rule] = (
    (RULE_EXTERNAL_ID, lambda t: bool(t.external_id), lambda a, b: a.external_id == b.external_id),
    (
        RULE_TITLE_DATE,
        lambda t: bool(t.title) and bool(t.due_date),
        lambda a, b: a.title == b.title and a.due_date == b.due_date,
    ),
)

CATEGORY_RULES: Sequence[Rule] = (
    (
        RULE_EXTERNAL_ID,
        lambda c: bool(c.external_course_id),
        lambda a, b: a.external_course_id == b.external_course_id,
    ),
    (RULE_NAME, lambda c: bool(c.name), lambda a, b: a.name == b.name),
)


def detect_duplicate_tasks(local: Sequence[Task], remote: Sequence[Task]) -> List[DuplicatePair[Task]]:
    return _detect(local or (), remote or (), TASK_RULES)


def detect_duplicate_categories(
    local: Sequence[Category], remote: Sequence[Category]
) -> List[DuplicatePair[Category]]:
    return _detect(local or (), remote or (), CATEGORY_RULES)


def unique_local(local: Sequence[T], pairs: Sequence[DuplicatePair[T]]) -> List[T]:
    paired = {p.local.id for p in pairs}
    return [item for item in local or () if item is not None and item.id not in paired]


def preview(
    local_tasks: Sequence[Task],
    remote_tasks: Sequence[Task],
    local_categories: Sequence[Category],
    remote_categories: Sequence[Category],
) -> MergePreview:
    task_pairs = detect_duplicate_tasks(local_tasks, remote_tasks)
    category_pairs = detect_duplicate_categories(local_categories, remote_categories)
    return MergePreview(
        task_duplicates=tuple(task_pairs),
        category_duplicates=tuple(category_pairs),
        unique_tasks=tuple(unique_local(local_tasks, task_pairs)),
        unique_categories=tuple(unique_local(local_categories, category_pairs)),
    )
