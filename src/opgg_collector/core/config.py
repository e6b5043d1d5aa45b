import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

# User-Agent needs to look like a modern browser, otherwise op.gg serves another page version.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/106.0.0.0 Safari/537.36"
)


def _float_env(name: str, default: float) -> float:
    try:
        v = os.environ.get(name)
        if v is not None and v.strip():
            return max(0.0, float(v.strip()))
    except ValueError:
        pass
    return default


@dataclass
class Settings:
    """Application settings loaded from environment variables with safe defaults."""

    app_name: str = "opgg-collector"
    env: str = "dev"
    log_level: str = "INFO"
    cache_dir: str = "cache"
    site_base_url: str = "https://www.op.gg"
    api_base_url: str = "https://op.gg/api/v1.0/internal/bypass"
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout_seconds: float = 30.0
    request_delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        return cls(
            app_name=os.getenv("APP_NAME", cls.app_name),
            env=os.getenv("ENV", cls.env),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            cache_dir=os.getenv("OPGG_CACHE_DIR", cls.cache_dir),
            site_base_url=os.getenv("OPGG_SITE_URL", cls.site_base_url).rstrip("/"),
            api_base_url=os.getenv("OPGG_API_URL", cls.api_base_url).rstrip("/"),
            user_agent=os.getenv("OPGG_USER_AGENT", cls.user_agent),
            http_timeout_seconds=_float_env("OPGG_HTTP_TIMEOUT_SECONDS", cls.http_timeout_seconds),
            request_delay_seconds=_float_env("OPGG_REQUEST_DELAY_SECONDS", cls.request_delay_seconds),
        )

    def database_url_for(self, region: str) -> str:
        """SQLite URL of the cache database for one region; creates the cache directory."""
        cache_dir = Path(self.cache_dir)
        cache_dir.mkdir(parents=True, exist_ok=True)
        db_path = (cache_dir / f"{region}.sqlite").resolve()
        return f"sqlite+aiosqlite:///{db_path.as_posix()}"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings.from_env()
