import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("app.config")

API_BASE_URLS = {
    "production": "https://api.atlassian.com",
    "development": "https://api.stg.atlassian.com",
}


def _must(name: str) -> str:
    v = os.getenv(name)
    if not v:
        raise RuntimeError(
            f"Missing required env var: {name} "
            "(usage: PORT=<http port> CLIENT_ID=<app client ID> CLIENT_SECRET=<app client secret>)"
        )
    return v


def _mask(value: str) -> str:
    return f"{value[:4]}****" if len(value) > 4 else "****"


@dataclass(frozen=True)
class Settings:
    # App credentials (DAC app management)
    CLIENT_ID: str = _must("CLIENT_ID")
    CLIENT_SECRET: str = _must("CLIENT_SECRET")

    # Platform environment: production or development (staging API)
    ENV: str = os.getenv("ENV", "production")

    # HTTP
    PORT: int = int(os.getenv("PORT") or "8000")
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS") or "15")
    TOKEN_REFRESH_MARGIN_SECONDS: int = int(os.getenv("TOKEN_REFRESH_MARGIN_SECONDS") or "60")

    # App
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./refapp.db")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    def __post_init__(self) -> None:
        if self.ENV not in API_BASE_URLS:
            raise ValueError(
                f"ENV must be 'production' or 'development', got '{self.ENV}'"
            )

    @property
    def api_base_url(self) -> str:
        return API_BASE_URLS[self.ENV]

    def log_summary(self) -> None:
        """Log a safe summary of loaded settings (secrets masked)."""
        logger.info(
            "settings_loaded",
            extra={
                "extra": {
                    "CLIENT_ID": self.CLIENT_ID,
                    "CLIENT_SECRET": _mask(self.CLIENT_SECRET),
                    "ENV": self.ENV,
                    "API_BASE_URL": self.api_base_url,
                    "PORT": self.PORT,
                    "HTTP_TIMEOUT_SECONDS": self.HTTP_TIMEOUT_SECONDS,
                    "TOKEN_REFRESH_MARGIN_SECONDS": self.TOKEN_REFRESH_MARGIN_SECONDS,
                    "DATABASE_URL": self.DATABASE_URL,
                    "LOG_LEVEL": self.LOG_LEVEL,
                }
            },
        )


settings = Settings()
