"""Application settings and configuration helpers."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_RESTAURANT_PROFILE = Path(__file__).resolve().parent.parent / "data" / "restaurant.json"


class Settings(BaseSettings):
    """Strongly-typed configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="Orderflow Assistant", description="Human-readable service name.")
    environment: str = Field(default="local", description="Deployment environment identifier.")
    log_level: str = Field(default="INFO", description="Application log level.")

    sqlite_path: Path = Field(
        default=Path("../db/conversations.db"),
        description="Conversation DB path.",
    )
    restaurant_profile_path: Path = Field(
        default=DEFAULT_RESTAURANT_PROFILE,
        description="JSON file with the menu, payment methods, delivery zones and contact details.",
    )

    openai_api_key: str | None = Field(default=None, description="Optional chat-completions API key.")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat-completions API (OpenRouter works too).",
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Chat model identifier.")
    llm_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Upper bound for a single language-model call.",
    )
    llm_max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum in-flight language-model calls per process.",
    )
    openrouter_referer: str | None = Field(
        default=None,
        description="Referer header required by OpenRouter (your app URL).",
    )
    openrouter_title: str | None = Field(
        default=None,
        description="Title header sent to OpenRouter.",
    )

    history_window: int = Field(
        default=10,
        ge=1,
        description="Number of recent messages passed to classification and capabilities.",
    )
    orchestration_mode: Literal["plan", "loop"] = Field(
        default="plan",
        description="'plan' runs the upfront execution plan, 'loop' runs the iterative agent loop.",
    )
    agent_max_iterations: int = Field(default=3, ge=1, description="Agent loop iteration cap.")
    parallel_read_only_steps: bool = Field(
        default=True,
        description="Fan out parallelizable read-only plan steps concurrently.",
    )
    max_response_chars: int = Field(
        default=500,
        ge=50,
        description="Responses longer than this are flagged by the validator.",
    )
    max_upsell_attempts: int = Field(
        default=2,
        ge=0,
        description="Upsell offers allowed before the validator blocks another one.",
    )
    turn_lock_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="How long a turn waits for an in-flight turn on the same conversation.",
    )
    address_validation_url: AnyHttpUrl | None = Field(
        default=None,
        description="Optional remote address validation endpoint. Zone matching is used when unset.",
    )

    frontend_origin: AnyHttpUrl | None = Field(
        default=None,
        description="Allowed frontend origin (CORS). If omitted, defaults to localhost dev server.",
    )
    additional_origins: List[AnyHttpUrl] = Field(
        default_factory=list,
        description="Additional allowed CORS origins for multi-client deployments.",
    )

    @property
    def cors_origins(self) -> list[str]:
        """Return the full list of allowed CORS origins."""

        origins: list[str] = []
        if self.frontend_origin:
            origins.append(str(self.frontend_origin).rstrip("/"))
        else:
            origins.extend(["http://localhost:5173", "http://127.0.0.1:5173"])

        for origin in self.additional_origins:
            origins.append(str(origin).rstrip("/"))

        # Deduplicate while preserving order
        return list(dict.fromkeys(origins))

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()
