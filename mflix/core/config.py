# Settings management (reads env vars/.env)
# mflix/core/config.py

import json
import logging
import os
from functools import lru_cache
from typing import Annotated, List, Tuple, Union

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def _split_csv(v: str) -> List[str]:
    return [i.strip() for i in v.split(",") if i.strip()]


class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables or .env file.
    """
    # --- Project Info ---
    PROJECT_NAME: str = Field("Mflix Catalog API", validation_alias="PROJECT_NAME")
    API_V1_STR: str = Field("/api/v1", validation_alias="API_V1_STR")
    VERSION: str = Field("0.1.0", validation_alias="APP_VERSION")

    # --- Logging ---
    LOG_LEVEL: str = Field("INFO", validation_alias="LOG_LEVEL")

    # --- Database (MongoDB) ---
    # Use SecretStr to prevent accidental logging of the URI
    MONGODB_URI: SecretStr = Field(SecretStr("mongodb://localhost:27017"), validation_alias="MONGODB_URI")
    MONGODB_DB_NAME: str = Field("sample_mflix", validation_alias="MONGODB_DB_NAME")
    MONGODB_TIMEOUT_MS: int = Field(
        default=5000,
        validation_alias="MONGODB_TIMEOUT_MS",
        description="Server selection timeout used when creating the Motor client"
    )

    # --- Catalog Queries ---
    DEFAULT_MOVIES_PER_PAGE: int = Field(20, ge=1, validation_alias="DEFAULT_MOVIES_PER_PAGE")
    DEFAULT_SORT_KEY: str = Field("tomatoes.viewer.numReviews", validation_alias="DEFAULT_SORT_KEY")
    RUNTIME_BOUNDARIES: Annotated[Tuple[int, ...], NoDecode] = Field(
        default=(0, 60, 90, 120, 180),
        validation_alias="RUNTIME_BOUNDARIES",
        description="Ascending bucket boundaries (minutes) for the runtime facet"
    )
    RATING_BOUNDARIES: Annotated[Tuple[int, ...], NoDecode] = Field(
        default=(0, 50, 70, 90, 100),
        validation_alias="RATING_BOUNDARIES",
        description="Ascending bucket boundaries for the rating facet"
    )
    RATING_FACET_FIELD: str = Field("metacritic", validation_alias="RATING_FACET_FIELD")

    # --- CORS ---
    # Comma-separated ("http://localhost:3000,https://*.example.com") or a JSON list
    BACKEND_CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(
        default=["*"],
        validation_alias="BACKEND_CORS_ORIGINS"
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return _split_csv(v)
        elif isinstance(v, str):
            return json.loads(v)
        elif isinstance(v, list):
            return v
        raise ValueError(f"Invalid BACKEND_CORS_ORIGINS format: {v}")

    @field_validator("RUNTIME_BOUNDARIES", "RATING_BOUNDARIES", mode='before')
    @classmethod
    def assemble_boundaries(cls, v: Union[str, List[int], Tuple[int, ...]]) -> Tuple[int, ...]:
        # Ordering is checked when the bucket stages are built, not here
        if isinstance(v, str) and not v.startswith("["):
            return tuple(int(i) for i in _split_csv(v))
        elif isinstance(v, str):
            return tuple(json.loads(v))
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )


@lru_cache()
def get_settings() -> Settings:
    """Returns the application settings instance."""
    logger.info("Attempting to load application settings...")
    try:
        settings_instance = Settings()
        logger.info(f"Settings loaded successfully for Project: {settings_instance.PROJECT_NAME}")
        logger.info(f"Log Level: {settings_instance.LOG_LEVEL}")
        logger.info(f"Database: {settings_instance.MONGODB_DB_NAME}")
        logger.info(f"CORS Origins: {settings_instance.BACKEND_CORS_ORIGINS}")
        # DO NOT log SecretStr values directly in production logs!
        return settings_instance
    except Exception as e:
        logger.critical(f"CRITICAL ERROR: Failed to load application settings: {e}", exc_info=True)
        raise RuntimeError(f"Could not load settings: {e}")


settings: Settings = get_settings()
