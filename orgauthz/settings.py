from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo).
    - Everything can be overridden via `AUTHZ_*` env vars.
    """

    model_config = SettingsConfigDict(env_prefix="AUTHZ_", extra="ignore")

    db_url: str | None = None
    registry_path: str | None = None
    cache_ttl_seconds: int = 300
    log_level: str = "INFO"
    default_tier_slug: str = "user"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "orgauthz.db"
        return f"sqlite:///{db_path}"

    def resolved_registry_path(self) -> Path:
        if self.registry_path:
            return Path(self.registry_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "permissions.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
