from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class LmsClient(ABC):
    """Read side of the LMS API. Payloads are the API's JSON objects, unmodified."""

    @abstractmethod
    async def list_active_courses(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def list_assignments(self, course_id: str) -> List[Dict[str, Any]]: ...

    @abstractmethod
    async def get_assignment(self, course_id: str, assignment_id: str) -> Dict[str, Any]: ...

    @abstractmethod
    async def get_submission(self, course_id: str, assignment_id: str) -> Dict[str, Any]: ...
