"""Outbound HTTP fetcher for upstream HLS resources."""

import logging

import httpx

from hls_relay.config import HLS_CONTENT_TYPE, Settings
from hls_relay.exceptions import UpstreamFetchError
from hls_relay.models import UpstreamResponse

logger = logging.getLogger(__name__)


class Fetcher:
    """Fetches a target URL with caller-supplied Referer and Origin overrides."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        default_content_type: str = HLS_CONTENT_TYPE,
    ):
        """
        Initialize the fetcher.

        Args:
            client: Shared async HTTP client (owns the connection pool)
            default_content_type: Content-Type reported when the upstream omits one
        """
        self.client = client
        self.default_content_type = default_content_type

    @classmethod
    def from_settings(cls, settings: Settings) -> "Fetcher":
        """Create a fetcher with a pooled client configured from settings."""
        client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_keepalive_connections=settings.http_max_keepalive_connections,
                max_connections=settings.http_max_connections,
            ),
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            follow_redirects=settings.http_follow_redirects,
            headers={"User-Agent": settings.user_agent},
        )
        logger.info(f"HTTP client initialized with timeout={settings.http_timeout_seconds}s")
        return cls(client, default_content_type=settings.default_content_type)

    async def fetch(self, target_url: str, referer: str = "", origin: str = "") -> UpstreamResponse:
        """
        Issue a single GET to the target and buffer the whole body.

        Both override headers are always sent, even when empty.

        Args:
            target_url: Absolute URL to fetch
            referer: Value for the Referer header
            origin: Value for the Origin header

        Returns:
            The upstream status, content type and body

        Raises:
            UpstreamFetchError: On any transport-level failure
        """
        headers = {
            "Referer": referer.encode("utf-8"),
            "Origin": origin.encode("utf-8"),
        }

        logger.debug(f"[FETCH] GET {target_url}")
        try:
            response = await self.client.get(target_url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # ValueError covers idna.IDNAError raised while encoding the host
            logger.error(f"[FETCH] Request error for {target_url}: {e!r}")
            raise UpstreamFetchError(target_url, e) from e

        content_type = response.headers.get("Content-Type") or self.default_content_type
        logger.info(
            f"[FETCH] Upstream response: status={response.status_code}, "
            f"content_type={content_type}, bytes={len(response.content)}, url={target_url}"
        )

        return UpstreamResponse(
            status_code=response.status_code,
            content_type=content_type,
            body=response.content,
            url=str(response.url),
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
