import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Auth (JWT issued by the identity provider)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    ALLOW_USER_ID_HEADER: bool = True  # X-User-Id fallback, never honoured in production

    # Transformation strategy
    TRANSFORM_STRATEGY: str = "remote"  # remote | fallback
    REMOTE_TRANSFORM_URL: str = "https://api.undetectable.ai/v2/humanize"
    REMOTE_TRANSFORM_API_KEY: Optional[str] = None
    REMOTE_TRANSFORM_TIMEOUT_SECONDS: float = 10.0
    REMOTE_TRANSFORM_RESPONSE_FIELD: str = "humanized"

    # Plans & history
    DEFAULT_PLAN: str = "free"
    HISTORY_DEFAULT_LIMIT: int = 10
    HISTORY_MAX_LIMIT: int = 100

    # Observability / Tracing
    OTEL_ENABLED: bool = False
    OTEL_EXPORTER: str = "console"  # console | memory

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def required_settings(cfg) -> List[str]:
    """Keys the running service needs; the remote strategy also needs its API key."""
    keys = ["DATABASE_URL", "JWT_SECRET"]
    if (getattr(cfg, "TRANSFORM_STRATEGY", "") or "").lower() == "remote":
        keys.append("REMOTE_TRANSFORM_API_KEY")
    return keys


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Report missing configuration by key name. Strict mode raises RuntimeError instead of warning."""
    cfg = settings_obj or settings
    if strict is None:
        strict = getattr(cfg, "CONFIG_STRICT", False)

    missing = [key for key in required_settings(cfg) if not getattr(cfg, key, None)]
    if not missing:
        return True

    message = f"Missing required configuration: {', '.join(missing)}"
    if strict:
        raise RuntimeError(message)
    (logger or logging.getLogger("humanizer")).warning(message)
    return True
