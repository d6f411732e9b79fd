"""Tests for the upstream fetcher."""

import httpx
import pytest

from hls_relay.config import Settings
from hls_relay.exceptions import UpstreamFetchError
from hls_relay.fetcher import Fetcher


def _fetcher(handler) -> Fetcher:
    """Create a fetcher whose client answers from a handler instead of the network."""
    return Fetcher(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestFetcher:
    """Test suite for the upstream fetcher."""

    @pytest.mark.asyncio
    async def test_forwards_override_headers(self):
        """Test that Referer and Origin reach the upstream exactly."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"#EXTM3U\n")

        fetcher = _fetcher(handler)
        await fetcher.fetch(
            "https://cdn.example.com/live/index.m3u8",
            referer="https://site.example/watch?v=1",
            origin="https://site.example",
        )
        await fetcher.aclose()

        assert len(seen) == 1
        assert seen[0].method == "GET"
        assert str(seen[0].url) == "https://cdn.example.com/live/index.m3u8"
        assert seen[0].headers["Referer"] == "https://site.example/watch?v=1"
        assert seen[0].headers["Origin"] == "https://site.example"

    @pytest.mark.asyncio
    async def test_empty_overrides_still_sent(self):
        """Test that empty Referer and Origin headers are sent, not dropped."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        fetcher = _fetcher(handler)
        await fetcher.fetch("https://cdn.example.com/seg.ts")
        await fetcher.aclose()

        assert "Referer" in seen[0].headers
        assert "Origin" in seen[0].headers
        assert seen[0].headers["Referer"] == ""
        assert seen[0].headers["Origin"] == ""

    @pytest.mark.asyncio
    async def test_non_ascii_referer(self):
        """Test that non-ASCII override values do not break the request."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        fetcher = _fetcher(handler)
        await fetcher.fetch("https://cdn.example.com/seg.ts", referer="https://site.example/café")
        await fetcher.aclose()

        assert seen[0].headers["Referer"] == "https://site.example/café"

    @pytest.mark.asyncio
    async def test_returns_status_content_type_and_body(self):
        """Test that the upstream response is buffered into an UpstreamResponse."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(206, content=b"\x47\x40\x00", headers={"Content-Type": "video/MP2T"})

        fetcher = _fetcher(handler)
        upstream = await fetcher.fetch("https://cdn.example.com/seg.ts")
        await fetcher.aclose()

        assert upstream.status_code == 206
        assert upstream.content_type == "video/MP2T"
        assert upstream.body == b"\x47\x40\x00"
        assert upstream.url == "https://cdn.example.com/seg.ts"

    @pytest.mark.asyncio
    async def test_default_content_type(self):
        """Test that a missing Content-Type falls back to the HLS type."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"#EXTM3U\n")

        fetcher = _fetcher(handler)
        upstream = await fetcher.fetch("https://cdn.example.com/live/index.m3u8")
        await fetcher.aclose()

        assert upstream.content_type == "application/vnd.apple.mpegurl"

    @pytest.mark.asyncio
    async def test_non_2xx_is_not_an_error(self):
        """Test that upstream error statuses are returned, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, content=b"Forbidden", headers={"Content-Type": "text/plain"})

        fetcher = _fetcher(handler)
        upstream = await fetcher.fetch("https://cdn.example.com/live/index.m3u8")
        await fetcher.aclose()

        assert upstream.status_code == 403
        assert upstream.body == b"Forbidden"
        assert not upstream.is_success

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("Connection refused"),
            httpx.ConnectTimeout("timed out"),
            httpx.ReadTimeout("read timed out"),
            httpx.RemoteProtocolError("Server disconnected without sending a response."),
        ],
    )
    async def test_transport_failure_raises(self, error):
        """Test that transport failures raise UpstreamFetchError carrying the cause."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            raise error

        fetcher = _fetcher(handler)
        with pytest.raises(UpstreamFetchError) as exc_info:
            await fetcher.fetch("https://unreachable.example.com/index.m3u8")
        await fetcher.aclose()

        assert exc_info.value.status_code == 500
        assert exc_info.value.cause is error
        assert exc_info.value.__cause__ is error
        assert exc_info.value.detail == str(error)
        assert len(attempts) == 1  # No retries

    @pytest.mark.asyncio
    async def test_from_settings(self):
        """Test that the pooled client is configured from settings."""
        settings = Settings(
            http_timeout_seconds=12.5,
            user_agent="relay-test/1.0",
            default_content_type="application/x-mpegURL",
        )

        fetcher = Fetcher.from_settings(settings)

        assert fetcher.client.timeout.connect == 12.5
        assert fetcher.client.timeout.read == 12.5
        assert fetcher.client.headers["User-Agent"] == "relay-test/1.0"
        assert fetcher.client.follow_redirects is True
        assert fetcher.default_content_type == "application/x-mpegURL"

        await fetcher.aclose()
        assert fetcher.client.is_closed

    @pytest.mark.asyncio
    async def test_malformed_idna_host_raises(self):
        """Test that a host the client cannot decode maps to UpstreamFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            request.url.host  # decodes the xn-- label
            return httpx.Response(200)

        fetcher = _fetcher(handler)
        with pytest.raises(UpstreamFetchError) as exc_info:
            await fetcher.fetch("https://xn--/x.m3u8")
        await fetcher.aclose()

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.cause, ValueError)
        assert exc_info.value.target_url == "https://xn--/x.m3u8"
