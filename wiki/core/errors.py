"""Error hierarchy for the wiki service.

Every failure a component hands to its caller is one of these classes, so a
storage failure keeps the same shape while it travels from the database
worker, across the channel, through the proxy and up to a single HTTP
response. Engine and transport exceptions never leave their component
unwrapped.
"""

from typing import Dict, Optional, Type

from fastapi import status


class WikiError(Exception):
    """Base exception for all wiki errors."""

    code = "WIKI_ERROR"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_remote(self) -> dict:
        """Envelope used to carry the error over the channel."""
        return {"kind": self.code, "message": self.message}

    def to_response(self) -> dict:
        return {"success": False, "error": self.message}


# =========================
# Request errors (400-level)
# =========================
class ValidationError(WikiError):
    """Malformed or missing fields. Never reaches the data service."""

    code = "VALIDATION_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST


class AuthError(WikiError):
    code = "AUTH_ERROR"
    http_status = status.HTTP_401_UNAUTHORIZED


class Unauthenticated(AuthError):
    code = "UNAUTHENTICATED"
    http_status = status.HTTP_401_UNAUTHORIZED


class Forbidden(AuthError):
    code = "FORBIDDEN"
    http_status = status.HTTP_403_FORBIDDEN


class NotFound(WikiError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND


class PageNotFound(NotFound):
    code = "PAGE_NOT_FOUND"

    @classmethod
    def with_id(cls, page_id: int) -> "PageNotFound":
        return cls(f"There is no page with ID {page_id}")


# =========================
# Infrastructure errors (500-level)
# =========================
class StorageError(WikiError):
    """Engine failure, constraint violation or lost connectivity."""

    code = "STORAGE_ERROR"


class ChannelError(WikiError):
    """The channel could not deliver a message."""

    code = "CHANNEL_ERROR"


class ChannelTimeout(ChannelError):
    """No reply arrived for a proxy call within its bounded wait."""

    code = "CHANNEL_TIMEOUT"


class UpstreamError(WikiError):
    """The external backup endpoint failed."""

    code = "UPSTREAM_ERROR"
    http_status = status.HTTP_502_BAD_GATEWAY


class InternalError(WikiError):
    code = "INTERNAL_ERROR"


class ConfigurationError(WikiError):
    """Raised at startup only; the service must not come up."""

    code = "CONFIGURATION_ERROR"


def _registry() -> Dict[str, Type[WikiError]]:
    found: Dict[str, Type[WikiError]] = {}
    pending = [WikiError]
    while pending:
        cls = pending.pop()
        found.setdefault(cls.code, cls)
        pending.extend(cls.__subclasses__())
    return found


def from_remote(kind: str, message: str) -> WikiError:
    """Rebuild an error received over the channel."""
    cls = _registry().get(kind, InternalError)
    return cls(message)
