"""Custom exceptions for the relay server."""

from typing import Optional

from fastapi import HTTPException, status


class RelayError(HTTPException):
    """Base class for errors that end a relay request early."""

    def __init__(self, status_code: int, detail: str, target_url: Optional[str] = None):
        super().__init__(status_code=status_code, detail=detail)
        self.target_url = target_url


class InvalidTargetError(RelayError):
    """Raised when the `url` query parameter is missing or not an absolute URL."""

    def __init__(self, target_url: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid URL",
            target_url=target_url,
        )


class UpstreamFetchError(RelayError):
    """Raised when the upstream resource cannot be fetched at the transport level."""

    def __init__(self, target_url: str, cause: Exception):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(cause) or f"{type(cause).__name__} while fetching {target_url}",
            target_url=target_url,
        )
        self.cause = cause


class UnresolvableLineError(ValueError):
    """Raised when a manifest line cannot be resolved to an absolute URI."""

    def __init__(self, line: str, reason: str = "not an absolute URL"):
        super().__init__(f"Unresolvable manifest line {line!r}: {reason}")
