from __future__ import annotations

from typing import Optional


class DomainError(Exception):
    """Base for errors the presentation layer is expected to show."""


class NotFoundError(DomainError):
    pass


class ValidationError(DomainError):
    pass


class ConflictError(DomainError):
    pass


class PersistenceError(DomainError):
    """The backing store rejected a write."""


class StaleStateError(DomainError):
    """The item under review disappeared from the pending list."""


class CredentialsError(DomainError):
    """
    LMS credentials are missing or were rejected.

    reason is one of: "required", "invalid_url", "rejected".
    """

    def __init__(self, reason: str, message: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message or reason)


class FetchError(Exception):
    pass


class NetworkError(FetchError):
    pass


class UpstreamError(FetchError):
    def __init__(self, status: int, url: str = "") -> None:
        self.status = status
        self.url = url
        super().__init__(f"LMS API error: {status}")


class ProtocolError(FetchError):
    pass
