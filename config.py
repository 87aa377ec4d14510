# backend/config.py

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: Optional[str] = None):
    return field(default_factory=lambda: os.getenv(name, default))


def _env_optional(name: str, default: Optional[str] = None):
    # An empty value counts as unset
    return field(default_factory=lambda: os.getenv(name, default) or None)


def _env_float(name: str, default: float):
    return field(default_factory=lambda: float(os.getenv(name, str(default))))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.getenv(name, str(default))))


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Every field can be overridden by keyword for tests, e.g.
    ``Settings(database_url="sqlite://")``.
    """

    app_env: str = _env("APP_ENV", "production")
    log_level: str = _env("LOG_LEVEL", "INFO")
    host: str = _env("HOST", "0.0.0.0")
    port: int = _env_int("PORT", 3001)
    database_url: str = _env("DATABASE_URL", "sqlite:///./chat_app.db")
    cors_origins: str = _env("CORS_ORIGINS", "http://localhost:3000")

    # ─── Identity provider ──────────────────────────────────────────────────
    auth_mode: str = _env("AUTH_MODE", "jwt")  # "jwt" or "remote"
    jwt_secret: str = _env("JWT_SECRET", "change_this_to_a_random_string")
    jwt_algorithm: str = _env("JWT_ALGORITHM", "HS256")
    jwt_audience: Optional[str] = _env_optional("JWT_AUDIENCE", "authenticated")
    auth_provider_url: Optional[str] = _env_optional("AUTH_PROVIDER_URL")
    auth_provider_api_key: Optional[str] = _env_optional("AUTH_PROVIDER_API_KEY")
    auth_timeout_seconds: float = _env_float("AUTH_TIMEOUT_SECONDS", 5.0)

    # ─── Response generator ─────────────────────────────────────────────────
    generator_backend: str = _env("GENERATOR_BACKEND", "stub")  # "stub" or "http"
    generator_model: str = _env("GENERATOR_MODEL", "stub-echo-1")
    generator_min_delay_seconds: float = _env_float("GENERATOR_MIN_DELAY_SECONDS", 0.5)
    generator_max_delay_seconds: float = _env_float("GENERATOR_MAX_DELAY_SECONDS", 2.0)
    generator_timeout_seconds: float = _env_float("GENERATOR_TIMEOUT_SECONDS", 30.0)
    llm_api_url: str = _env("LLM_API_URL", "https://api.groq.com/openai/v1")
    llm_api_key: Optional[str] = _env_optional("LLM_API_KEY")

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
