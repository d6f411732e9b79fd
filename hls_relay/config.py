"""Configuration management for the relay server."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from hls_relay import __version__

HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 3030
    log_level: str = "info"

    # HTTP Client Configuration
    http_timeout_seconds: float = 30.0
    http_max_connections: int = 100
    http_max_keepalive_connections: int = 20
    http_follow_redirects: bool = True
    user_agent: str = f"hls-cors-relay/{__version__}"

    # Response Configuration
    cors_permissive: bool = True  # Also send Allow-Headers/Allow-Methods
    default_content_type: str = HLS_CONTENT_TYPE

    @property
    def cors_headers(self) -> dict[str, str]:
        """CORS headers attached to every relay response."""
        headers = {"Access-Control-Allow-Origin": "*"}
        if self.cors_permissive:
            headers["Access-Control-Allow-Headers"] = "*"
            headers["Access-Control-Allow-Methods"] = "*"
        return headers
