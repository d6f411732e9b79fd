"""FastAPI application for the HLS CORS relay."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from hls_relay import __version__
from hls_relay.config import Settings
from hls_relay.exceptions import InvalidTargetError, RelayError
from hls_relay.fetcher import Fetcher
from hls_relay.m3u8_rewriter import decode_manifest, encode_manifest, rewrite
from hls_relay.models import ProxyRequest

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)

router = APIRouter()


def configure_logging(log_level: str) -> None:
    """Configure process-wide logging once at startup."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_fetcher(request: Request) -> Fetcher:
    """Shared fetcher created during application startup."""
    return request.app.state.fetcher


async def relay_error_handler(request: Request, exc: RelayError) -> PlainTextResponse:
    """Render relay errors as plain text that browsers can read cross-origin."""
    settings: Settings = request.app.state.settings
    logger.warning(f"[RELAY] Rejected with {exc.status_code}: {exc.detail}, url={exc.target_url}")
    return PlainTextResponse(
        content=str(exc.detail),
        status_code=exc.status_code,
        headers=settings.cors_headers,
    )


@router.get(
    "/proxy",
    summary="Relay a resource",
    description="Fetch a remote resource with CORS headers, rewriting HLS manifests to route through the relay",
)
async def proxy(
    url: Optional[str] = Query(None, description="Absolute URL of the resource to fetch"),
    referer: Optional[str] = Query(None, description="Referer header sent upstream"),
    origin: Optional[str] = Query(None, description="Origin header sent upstream"),
    proxy_all: Optional[str] = Query(None, alias="all", description='"yes" prefixes absolute manifest lines'),
    fetcher: Fetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Relay a single resource to the browser.

    This endpoint:
    1. Validates the target URL (400 "Invalid URL" when missing or not absolute)
    2. Fetches it once with the Referer/Origin overrides (500 on transport failure)
    3. For .m3u8 targets: rewrites every referenced URI to come back through /proxy
    4. Mirrors the upstream status and Content-Type, adding CORS headers
    """
    logger.info(f"[RELAY] Incoming request: url={url}, referer={referer}, origin={origin}")

    if url is None:
        raise InvalidTargetError()

    try:
        relay_request = ProxyRequest.from_query(url, referer=referer, origin=origin, all=proxy_all)
    except ValidationError as e:
        logger.debug(f"[RELAY] Target validation failed: {e}")
        raise InvalidTargetError(url) from e

    upstream = await fetcher.fetch(
        relay_request.target_url,
        referer=relay_request.referer,
        origin=relay_request.origin,
    )
    if upstream.url and upstream.url != relay_request.target_url:
        logger.info(f"[RELAY] Final upstream URL: {relay_request.target_url} -> {upstream.url}")
    if not upstream.is_success:
        logger.warning(f"[RELAY] Upstream returned {upstream.status_code}, mirroring it: url={relay_request.target_url}")

    body = upstream.body
    if relay_request.is_manifest:
        # Upstream error bodies are rewritten too; they may still be manifests
        rewritten = rewrite(
            decode_manifest(body),
            relay_request.target_url,
            referer=relay_request.referer,
            origin=relay_request.origin,
            proxy_all=relay_request.proxy_all,
        )
        body = encode_manifest(rewritten)
        logger.info(
            f"[RELAY] Manifest rewritten: {len(upstream.body)} -> {len(body)} bytes, "
            f"url={relay_request.target_url}"
        )

    return Response(
        content=body,
        status_code=upstream.status_code,
        headers={**settings.cors_headers, "Content-Type": upstream.content_type},
    )


@router.options("/proxy", include_in_schema=False)
async def proxy_preflight(settings: Settings = Depends(get_settings)) -> Response:
    """Answer CORS preflight requests."""
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=settings.cors_headers)


@router.get(
    "/health",
    summary="Health check",
)
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
    }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        settings: Settings to run with (read from the environment when omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage the shared HTTP client (startup and shutdown)."""
        logger.info("Starting HLS CORS relay")
        app.state.fetcher = Fetcher.from_settings(settings)

        yield

        logger.info("Shutting down HLS CORS relay")
        await app.state.fetcher.aclose()
        logger.info("HTTP client closed")

    app = FastAPI(
        title="HLS CORS Relay",
        description="CORS-unlocking relay for HLS manifests, segments and keys",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_exception_handler(RelayError, relay_error_handler)
    app.include_router(router)
    return app


app = create_app()
