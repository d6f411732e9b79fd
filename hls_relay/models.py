"""Data models for the relay server."""

from typing import Optional
from urllib.parse import urlsplit

import idna
from pydantic import BaseModel, Field, field_validator

from hls_relay.config import HLS_CONTENT_TYPE


def validate_hostname(hostname: str) -> None:
    """
    Reject hostnames the HTTP client cannot encode.

    Non-ASCII names must IDNA-encode and ASCII "xn--" labels must decode.

    Raises:
        ValueError: If the hostname is not a valid IDNA name
    """
    try:
        if not hostname.isascii():
            idna.encode(hostname)
            return
        for label in hostname.split("."):
            if label.startswith("xn--"):
                idna.decode(label)
    except UnicodeError as e:  # idna.IDNAError and label length errors
        raise ValueError(f"target_url has an invalid host {hostname!r}: {e}")


class ProxyRequest(BaseModel):
    """Validated query parameters of a `/proxy` request."""

    target_url: str = Field(..., description="Absolute URL of the resource to fetch")
    referer: str = Field("", description="Value forwarded as the Referer header")
    origin: str = Field("", description="Value forwarded as the Origin header")
    proxy_all: bool = Field(False, description="Prefix absolute manifest lines instead of rewriting them")

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v: str) -> str:
        """Ensure target_url is an absolute http(s) URL with a host."""
        try:
            parsed = urlsplit(v)
            parsed.port  # raises ValueError on a malformed port
        except ValueError as e:
            raise ValueError(f"target_url is not a valid URL: {e}")

        if parsed.scheme not in ("http", "https"):
            raise ValueError("target_url must use the http or https scheme")
        if not parsed.hostname:
            raise ValueError("target_url must include a host")
        validate_hostname(parsed.hostname)
        return v

    @classmethod
    def from_query(
        cls,
        url: Optional[str],
        referer: Optional[str] = None,
        origin: Optional[str] = None,
        all: Optional[str] = None,
    ) -> "ProxyRequest":
        """Build a request from raw query values; `all` enables proxy-all only when it is "yes"."""
        return cls(
            target_url=url,
            referer=referer or "",
            origin=origin or "",
            proxy_all=all == "yes",
        )

    @property
    def is_manifest(self) -> bool:
        """Whether the target looks like an HLS manifest."""
        return ".m3u8" in self.target_url


class UpstreamResponse(BaseModel):
    """Buffered result of one upstream fetch."""

    status_code: int
    content_type: str = HLS_CONTENT_TYPE
    body: bytes = b""
    url: Optional[str] = None  # Final URL after redirects

    @property
    def is_success(self) -> bool:
        """Whether the upstream answered with a 2xx status."""
        return 200 <= self.status_code < 300
