from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from duesync.domain.merge.detector import detect_duplicate_tasks
from duesync.domain.merge.models import MergeRequest, MergeResolution, MergeResult
from duesync.domain.merge.ports import MergeEndpoint
from duesync.domain.tasks.models import Task
from duesync.domain.tasks.ports import (
    CategoryRepository,
    MergeAuditRepository,
    SettingsRepository,
    TaskRepository,
)
from duesync.domain.tasks.rules import validate_task

logger = logging.getLogger(__name__)


def overwrite_fields(task: Task, category_id: Optional[str]) -> Dict[str, Any]:
    return {
        "title": task.title,
        "description": task.description,
        "due_date": task.due_date,
        "category_id": category_id,
        "task_type": task.task_type,
        "status": task.status,
        "notes": task.notes,
        "url": task.url,
        "points_possible": task.points_possible,
        "due_date_override": task.due_date_override,
        "status_override": task.status_override,
    }


class MergeResolver(MergeEndpoint):
    """
    Folds a local dataset into the account bound to the repositories.

    Not atomic: every write stands alone. Re-running with the same request after a
    partial failure does not re-insert tasks, because detection runs against the
    account's current tasks each time.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        categories: CategoryRepository,
        settings: SettingsRepository,
        audit: MergeAuditRepository,
    ) -> None:
        self._tasks = tasks
        self._categories = categories
        self._settings = settings
        self._audit = audit

    async def merge(self, request: MergeRequest) -> MergeResult:
        for task in request.tasks:
            validate_task(task)

        mapping, merged_categories = await self._merge_categories(request)
        merged_tasks = await self._merge_tasks(request, mapping)
        copied = await self._copy_credentials(request)

        await self._audit.add(request.session_id, merged_tasks, merged_categories)
        logger.info(
            "Merged session=%s into user=%s: tasks=%d categories=%d credentials_copied=%s",
            request.session_id,
            self._tasks.principal.user_id,
            merged_tasks,
            merged_categories,
            copied,
        )
        return MergeResult(
            success=True,
            merged_tasks=merged_tasks,
            merged_categories=merged_categories,
            credentials_copied=copied,
        )

    async def _merge_categories(self, request: MergeRequest):
        mapping: Dict[str, str] = {}
        created = 0
        for category in request.categories:
            remote = None
            # names collide too often to mean anything here; only the course id counts
            if category.external_course_id:
                remote = await self._categories.find_by_course(category.external_course_id)
            if remote is None:
                remote = await self._categories.create(replace(category, id=""))
                created += 1
            mapping[category.id] = remote.id
        return mapping, created

    async def _merge_tasks(self, request: MergeRequest, mapping: Dict[str, str]) -> int:
        remote: List[Task] = list(await self._tasks.list())
        merged = 0
        for task in request.tasks:
            category_id = mapping.get(task.category_id) if task.category_id else None
            pairs = detect_duplicate_tasks([task], remote)

            if not pairs:
                created = await self._tasks.create(replace(task, id="", category_id=category_id))
                remote.append(created)
                merged += 1
                continue

            existing = pairs[0].remote
            resolution = request.resolution_for(task.id)
            if resolution is MergeResolution.THEIRS:
                continue
            if resolution is MergeResolution.MINE:
                updated = await self._tasks.update(existing.id, overwrite_fields(task, category_id))
                remote = [updated if r.id == existing.id else r for r in remote]
            else:
                # the account copy keeps the external id; two tasks may not share one
                created = await self._tasks.create(replace(task, id="", category_id=category_id, external_id=None))
                remote.append(created)
            merged += 1
        return merged

    async def _copy_credentials(self, request: MergeRequest) -> bool:
        local = request.settings
        if local is None or not local.has_credentials:
            return False
        current = await self._settings.get()
        if current.has_credentials:
            return False
        await self._settings.save_credentials(local.lms_url, local.lms_token)
        return True
