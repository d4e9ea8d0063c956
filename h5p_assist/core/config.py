# ------------------------------------------------------------
# Module: h5p_assist/core/config.py
# Purpose: Central, typed application settings (code defaults + optional env overrides).
# ------------------------------------------------------------

"""Typed configuration hub for the relay, the upstream client, and the consumer.

Responsibilities
----------------
- Provide strongly-typed toggles, endpoints, timeouts, and sampling knobs.
- Offer `Settings.from_env()` for `.env` / `H5P_*` environment overrides.
- Derive the Ollama options map from validated fields.

Notes
-----
- Extras are forbidden to surface typos/unknown keys early.
- Import `settings` anywhere; do not re-create Settings() per request.
"""

from __future__ import annotations

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, computed_field, field_validator

from h5p_assist.llm.client.ollama_http import base_url

ENV_PREFIX = "H5P_"


class Settings(BaseModel):
    """Application configuration with code defaults."""

    model_config = dict(extra="forbid")

    # App toggles
    APP_ENV: Literal["dev", "prod"] = "dev"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    ACCESS_LOG: bool = True
    MUTE_ALL_LOGS: bool = False
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    API_PREFIX: str = "/api/v1"

    # Upstream (Ollama) endpoint and models
    OLLAMA_BASE_URL: str = "http://127.0.0.1:11434"
    GEN_MODEL: str = "llama2"
    FALLBACK_MODEL: str | None = None

    # ---- LLM sampling controls (validated to avoid provider 400s) ----
    LLM_TEMP: float = Field(0.7, ge=0.0, le=2.0, description="Sampling temperature")
    LLM_TOP_P: float = Field(0.9, ge=0.0, le=1.0, description="Nucleus sampling")
    LLM_TOP_K: int | None = Field(None, ge=0, description="Top-K sampling (Ollama)")

    # Upstream timeouts; read=None means no bound between chunks.
    UPSTREAM_CONNECT_TIMEOUT_S: float = Field(5.0, gt=0)
    UPSTREAM_READ_TIMEOUT_S: float | None = Field(120.0, gt=0)
    GENERATE_TIMEOUT_S: float = Field(90.0, gt=0)

    # Consumer → relay
    RELAY_URL: str = "http://127.0.0.1:8000"
    RELAY_CONNECT_TIMEOUT_S: float = Field(5.0, gt=0)
    RELAY_READ_TIMEOUT_S: float | None = Field(120.0, gt=0)

    # Accept comma-separated string or list for CORS_ORIGINS; normalize to list[str].
    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _coerce_origins(cls, v: str | list[str]):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("OLLAMA_BASE_URL", mode="after")
    @classmethod
    def _normalize_base(cls, v: str) -> str:
        return base_url(v)

    @field_validator("RELAY_URL", "API_PREFIX", mode="after")
    @classmethod
    def _strip_slash(cls, v: str) -> str:
        return v.rstrip("/")

    # Empty env values mean "unset" for optional fields.
    @field_validator(
        "FALLBACK_MODEL",
        "LLM_TOP_K",
        "UPSTREAM_READ_TIMEOUT_S",
        "RELAY_READ_TIMEOUT_S",
        mode="before",
    )
    @classmethod
    def _blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @computed_field(return_type=dict)
    def ollama_options(self) -> dict:
        """Options map for Ollama /api/generate."""
        opts = {"temperature": self.LLM_TEMP, "top_p": self.LLM_TOP_P}
        if self.LLM_TOP_K is not None:
            opts["top_k"] = self.LLM_TOP_K
        return opts

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, **overrides) -> Settings:
        """Build settings from `.env` + `H5P_*` variables, then explicit overrides."""
        if env is None:
            load_dotenv()
            env = dict(os.environ)
        values: dict = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls(**values)


# Eagerly instantiate once at import.
settings = Settings.from_env()
