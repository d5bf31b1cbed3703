from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from project root so it loads regardless of cwd
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Upstream REST API
    api_url: str = "http://localhost:5000/api/v1"
    request_timeout_seconds: float = 10.0
    http_retries: int = 2
    # Refresh tokens this many seconds before they actually expire
    token_expiry_buffer_seconds: int = 30

    # Socket.IO. Empty socket_url means "api_url without /api/v1"
    socket_url: str = ""
    socket_transports: str = "websocket,polling"
    socket_reconnection_attempts: int = 10
    socket_reconnection_delay: float = 1.0

    # Chat
    typing_indicator_seconds: float = 2.0
    messages_page_limit: int = 50

    # Local session store (tokens + identity)
    session_db_url: str = f"sqlite:///{_PROJECT_ROOT / '.nyaybooker_session.db'}"

    # Facade CORS
    cors_origins: str = "http://localhost:5173"

    # Env
    env: str = "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def socket_transports_list(self) -> list[str]:
        return [t.strip() for t in self.socket_transports.split(",") if t.strip()]

    @property
    def resolved_socket_url(self) -> str:
        if self.socket_url:
            return self.socket_url
        return self.api_url.replace("/api/v1", "").rstrip("/") or "http://localhost:5000"


settings = Settings()
