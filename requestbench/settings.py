"""Service configuration loaded from BENCH_* environment variables."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from requestbench.models.enums import BackendKind


class BenchSettings(BaseSettings):
    """requestbench settings.

    All fields are read from environment variables with the ``BENCH_`` prefix.
    For example, ``BENCH_LOG_LEVEL=DEBUG`` maps to ``log_level``.
    """

    model_config = SettingsConfigDict(
        env_prefix="BENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"

    # -- Data storage ----------------------------------------------------------
    data_root: str = "./data"
    """Unified root directory for all managed data (workspaces, embedded DB)."""

    data_prefix: str | None = None
    """Optional namespace prefix inserted into all data paths.

    When set, all paths become ``{data_root}/{data_prefix}/...``.
    """

    backend: BackendKind = BackendKind.FILESYSTEM

    # Key-value (only when backend = "kv")
    kv_url: str | None = None
    """SQLAlchemy URL.  Defaults to an SQLite file under the data root."""

    # Remote (only when backend = "remote")
    remote_url: str = "http://localhost:3102/api"
    remote_timeout: float = 10.0

    # -- Request dispatch ------------------------------------------------------
    request_timeout: float = 30.0
    follow_redirects: bool = True
    verify_ssl: bool = True

    # -- Server ----------------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 3102

    # -- Helpers ---------------------------------------------------------------

    def resolve_kv_url(self) -> str:
        """Return the configured KV URL or the default SQLite file path."""
        if self.kv_url:
            return self.kv_url
        base = Path(self.data_root)
        if self.data_prefix:
            base = base / self.data_prefix
        return f"sqlite+aiosqlite:///{base / 'requestbench.db'}"


@lru_cache(maxsize=1)
def get_settings() -> BenchSettings:
    """Return a cached settings instance.

    Reads from environment variables and ``.env`` on first call, then returns
    the same object.  Call ``get_settings.cache_clear()`` in tests to force a
    re-read after overriding env vars.
    """
    return BenchSettings()
