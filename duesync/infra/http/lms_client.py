from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from duesync.constants import PAGE_SIZE
from duesync.domain.common.errors import CredentialsError, ProtocolError
from duesync.domain.sync.ports import LmsClient
from duesync.infra.http.pagination import fetch_all_pages, get_json

logger = logging.getLogger(__name__)

_API_SUFFIX = re.compile(r"/api/v1/?$")
_BEARER_PREFIX = re.compile(r"^Bearer\s+", re.IGNORECASE)


def normalize_base_url(url: str, strip_api_path: bool = True) -> str:
    base = (url or "").strip().rstrip("/")
    if strip_api_path:
        base = _API_SUFFIX.sub("", base)
    return base


def normalize_token(token: str) -> str:
    return _BEARER_PREFIX.sub("", (token or "").strip())


class HttpLmsClient(LmsClient):
    """
    Canvas-style REST client over httpx.

    Credentials are normalized on construction. Missing ones raise
    CredentialsError("required") from the first call, before any request is sent.
    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = normalize_base_url(base_url)
        self._token = normalize_token(token)
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/json",
            },
            follow_redirects=True,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "HttpLmsClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        if not self._base_url or not self._token:
            raise CredentialsError("required", "LMS URL and token are required")
        return f"{self._base_url}/api/v1{path}"

    async def list_active_courses(self) -> List[Dict[str, Any]]:
        url = self._url(f"/courses?enrollment_state=active&per_page={PAGE_SIZE}")
        return await fetch_all_pages(self._client, url)

    async def list_assignments(self, course_id: str) -> List[Dict[str, Any]]:
        url = self._url(f"/courses/{course_id}/assignments?per_page={PAGE_SIZE}&include[]=submission")
        return await fetch_all_pages(self._client, url)

    async def get_assignment(self, course_id: str, assignment_id: str) -> Dict[str, Any]:
        return await self._get_object(self._url(f"/courses/{course_id}/assignments/{assignment_id}"))

    async def get_submission(self, course_id: str, assignment_id: str) -> Dict[str, Any]:
        return await self._get_object(
            self._url(f"/courses/{course_id}/assignments/{assignment_id}/submissions/self")
        )

    async def _get_object(self, url: str) -> Dict[str, Any]:
        data = await get_json(self._client, url)
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object from {url}")
        return data
