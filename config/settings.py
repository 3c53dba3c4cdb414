"""Application configuration using pydantic-settings."""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration loaded from environment / .env file."""

    # ── Workflow ──────────────────────────────────────────────────────────────
    # "reviews" collects paginated review lists, "members" acts on every
    # member of a list page.
    workflow: str = Field(default="reviews", description="Workflow variant to run")

    # ── Tab handling ──────────────────────────────────────────────────────────
    page_load_timeout_seconds: float = Field(default=30.0)
    # Extra wait after "complete" so deferred rendering can finish.
    settle_delay_seconds: float = Field(default=1.0)
    # Wait between units so the target site is not hammered.
    politeness_delay_seconds: float = Field(default=1.0)

    # ── Retry ─────────────────────────────────────────────────────────────────
    max_attempts: int = Field(default=3, ge=1, description="Total attempts per unit, first one included")
    retry_delay_seconds: float = Field(default=2.0)

    # ── HTTP tab host ─────────────────────────────────────────────────────────
    http_timeout_seconds: float = Field(default=20.0)
    user_agent: str = Field(default="tab-workflow-orchestrator/1.0")

    # ── Storage ───────────────────────────────────────────────────────────────
    state_file: str = Field(default="data/state.json")
    state_key: str = Field(default="collectionState")

    # ── Server ────────────────────────────────────────────────────────────────
    server_host: str = Field(default="127.0.0.1")
    server_port: int = Field(default=8088)

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default="logs/orchestrator.log")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
