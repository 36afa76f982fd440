import os
from typing import Callable, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models import KeywordPolicy

T = TypeVar("T")

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


def _log_level(value: str) -> str:
    level = value.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"expected one of {', '.join(LOG_LEVELS)}")
    return level


class Settings(BaseModel):
    """Runtime configuration, read from the environment (and .env via python-dotenv)."""
    model_config = ConfigDict(frozen=True)

    database_url: str
    host: str = "0.0.0.0"
    port: int = Field(3001, ge=1, le=65535)
    github_api_url: str = "https://api.github.com"
    github_timeout: float = Field(15.0, gt=0)
    keyword_policy: KeywordPolicy = KeywordPolicy.KEEP
    db_pool_size: int = Field(5, ge=1)
    db_max_overflow: int = Field(5, ge=0)
    db_pool_timeout: float = Field(30.0, gt=0)
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        db_url = os.getenv("DATABASE_URL", "").strip()
        if not db_url:
            raise ValueError("DATABASE_URL is not set in the environment.")

        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=db_url,
            host=_env("HOST", "0.0.0.0", str),
            port=_env("PORT", 3001, int),
            github_api_url=_env("GITHUB_API_URL", "https://api.github.com", str),
            github_timeout=_env("GITHUB_TIMEOUT", 15.0, float),
            keyword_policy=_env("KEYWORD_POLICY", KeywordPolicy.KEEP, lambda v: KeywordPolicy(v.lower())),
            db_pool_size=_env("DB_POOL_SIZE", 5, int),
            db_max_overflow=_env("DB_MAX_OVERFLOW", 5, int),
            db_pool_timeout=_env("DB_POOL_TIMEOUT", 30.0, float),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
            log_level=_env("LOG_LEVEL", "INFO", _log_level),
        )
