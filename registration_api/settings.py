from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(raw: str) -> list[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


class Settings(BaseSettings):
    # Local dev: load from .env automatically.
    # In production (e.g. a serverless host): inject real env vars instead.
    model_config = SettingsConfigDict(
        env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )

    # Env vars:
    # - API_PREFIX: mount prefix for the registration endpoints ("" or "/api")
    # - HOST / PORT: only used when running as a standalone process
    # - BCRYPT_ROUNDS: bcrypt cost factor (12 takes a few tens of ms per hash)
    # - RATE_LIMIT_*: fixed-window limiter, keyed by client address
    # - CORS_ORIGINS: comma-separated list, "*" for any origin
    # - SEED_USERNAMES: comma-separated usernames that start out taken
    api_prefix: str = Field(default="", validation_alias="API_PREFIX")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3000, validation_alias="PORT")

    bcrypt_rounds: int = Field(default=12, ge=4, le=31, validation_alias="BCRYPT_ROUNDS")

    rate_limit_window_seconds: float = Field(default=15 * 60, gt=0, validation_alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_max_requests: int = Field(default=100, ge=0, validation_alias="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_trust_forwarded: bool = Field(default=False, validation_alias="RATE_LIMIT_TRUST_FORWARDED")

    cors_origins: str = Field(default="*", validation_alias="CORS_ORIGINS")
    seed_usernames: str = Field(default="existinguser", validation_alias="SEED_USERNAMES")
    max_extra_fields: int = Field(default=20, ge=0, validation_alias="MAX_EXTRA_FIELDS")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    def model_post_init(self, __context):  # type: ignore[override]
        # Normalize "/api/" and "api" to "/api"; "/" means no prefix.
        p = (self.api_prefix or "").strip().strip("/")
        self.api_prefix = f"/{p}" if p else ""

    @property
    def cors_origin_list(self) -> list[str]:
        return _split_csv(self.cors_origins) or ["*"]

    @property
    def seed_username_list(self) -> list[str]:
        return _split_csv(self.seed_usernames)


def get_settings() -> Settings:
    """Load settings from environment.

    Keep this as the single canonical constructor for Settings(). FastAPI
    dependencies and tests can override/monkeypatch this function.
    """
    return Settings()
