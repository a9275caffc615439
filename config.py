# config.py
"""Configuration settings for the visual bible extraction engine.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import os
from typing import Literal

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()

_PLACEHOLDER_API_KEYS = {"", "nope", "changeme"}


class BibleSettings(BaseSettings):
    """Full configuration for the extraction engine."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"
    EXTRACTION_MODEL: str = "gemini-2.5-flash"
    # Optional model for the per-character smart merge; defaults to EXTRACTION_MODEL
    MERGE_MODEL: str | None = None

    # Temperature Settings
    TEMPERATURE_EXTRACTION: float = 0.4
    TEMPERATURE_ENRICHMENT: float = 0.5
    TEMPERATURE_MERGE: float = 0.2
    LLM_TOP_P: float = 0.8
    MAX_GENERATION_TOKENS: int = 16384

    # LLM Call Settings
    HTTPX_TIMEOUT: float = Field(600.0, gt=0)
    LLM_RETRY_ATTEMPTS: int = Field(5, ge=1)
    LLM_RETRY_BASE_DELAY_SECONDS: float = Field(5.0, ge=0)
    LLM_RETRY_JITTER_SECONDS: float = Field(2.0, ge=0)
    # Timeouts count as non-retryable unless the provider signals "busy" this way
    TREAT_TIMEOUT_AS_RATE_LIMIT: bool = False

    # Chunk loop
    MAX_CHUNK_SIZE: int = Field(50000, gt=0)
    API_PACE_MS: int = Field(4000, ge=0)
    SKIP_FAILED_CHUNKS: bool = True
    ENRICH_AFTER_CANCEL: bool = False
    ENABLE_ENRICHMENT: bool = True

    # Consolidation
    CHARACTER_MERGE_STRATEGY: Literal["ai_assisted", "deterministic"] = "ai_assisted"
    CONTEXT_DESCRIPTION_PREVIEW_CHARS: int = 100
    ENRICH_MIN_CHARACTER_TEXT: int = 20
    ENRICH_MIN_ITEM_TEXT: int = 15
    ENRICH_MIN_SCENE_DESCRIPTION: int = 30
    ENRICH_MIN_SCENE_ATMOSPHERE: int = 10

    # Output and File Paths
    BASE_OUTPUT_DIR: str = "bible_output"
    BIBLE_FILE: str = "visual_bible.json"
    DEBUG_LOG_FILE: str = "analysis_debug_log.json"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="AGENT_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "bible_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def set_dynamic_model_defaults(self) -> BibleSettings:
        if self.MERGE_MODEL is None:
            self.MERGE_MODEL = self.EXTRACTION_MODEL
        if self.OPENAI_API_KEY.strip().lower() in _PLACEHOLDER_API_KEYS:
            logger.warning(
                "OPENAI_API_KEY is a placeholder; service calls will likely be rejected."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", populate_by_name=True
    )


settings = BibleSettings()

BIBLE_FILE_PATH = os.path.join(settings.BASE_OUTPUT_DIR, settings.BIBLE_FILE)
DEBUG_LOG_FILE_PATH = os.path.join(settings.BASE_OUTPUT_DIR, settings.DEBUG_LOG_FILE)
