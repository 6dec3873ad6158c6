from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from duesync.domain.common.errors import NetworkError, ProtocolError, UpstreamError

logger = logging.getLogger(__name__)


def is_json_response(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "")


def next_link(response: httpx.Response) -> Optional[str]:
    link = response.links.get("next")
    return link.get("url") if link else None


async def get_json(client: httpx.AsyncClient, url: str, headers: Optional[Mapping[str, str]] = None) -> Any:
    """One GET, with transport/status/content errors mapped to FetchError subtypes."""
    response = await _get(client, url, headers)
    return _decode(response)


async def fetch_all_pages(
    client: httpx.AsyncClient,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
) -> List[Dict[str, Any]]:
    """
    Follow rel="next" links until exhausted and concatenate the pages.

    Every page must be a JSON array; anything else raises ProtocolError.
    """
    results: List[Dict[str, Any]] = []
    next_url: Optional[str] = url
    pages = 0
    while next_url:
        response = await _get(client, next_url, headers)
        data = _decode(response)
        if not isinstance(data, list):
            raise ProtocolError(f"Expected a JSON array from {next_url}")
        results.extend(data)
        pages += 1
        next_url = next_link(response)
    logger.debug("Fetched %d item(s) over %d page(s) from %s", len(results), pages, url)
    return results


async def _get(client: httpx.AsyncClient, url: str, headers: Optional[Mapping[str, str]]) -> httpx.Response:
    try:
        response = await client.get(url, headers=headers)
    except httpx.DecodingError as e:
        raise ProtocolError("LMS API error: undecodable response") from e
    except httpx.RequestError as e:
        # transport failures, redirect loops
        raise NetworkError(f"LMS API error: network ({e.__class__.__name__})") from e
    if not response.is_success:
        raise UpstreamError(response.status_code, url)
    return response


def _decode(response: httpx.Response) -> Any:
    if not is_json_response(response):
        raise ProtocolError("LMS API error: invalid response")
    try:
        return response.json()
    except ValueError as e:
        raise ProtocolError("LMS API error: invalid JSON") from e
