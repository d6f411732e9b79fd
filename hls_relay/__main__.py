"""Run the relay with uvicorn: python -m hls_relay."""

import uvicorn

from hls_relay.config import Settings
from hls_relay.main import create_app


def main() -> None:
    """Start the relay on the configured host and port."""
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
