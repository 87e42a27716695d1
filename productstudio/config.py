from functools import lru_cache
from typing import List, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the Product Studio backend."""

    #----------------------------------------------------------
    # External API settings
    #----------------------------------------------------------
    image_provider: Literal["gemini", "openai"] = Field(
        default="gemini",
        description="Which external image generation API backs the generation client.",
    )

    gemini_api_key: SecretStr = Field(
        default="",
        description="API key for authenticating with the Gemini image generation service.",
    )

    gemini_image_model_id: str = Field(
        default="gemini-2.5-flash-image",
        description="Gemini model id used for image-to-image generation.",
    )

    openai_api_key: SecretStr = Field(
        default="",
        description="API key for authenticating with the OpenAI image edit endpoint.",
    )

    openai_api_base_url: str | None = Field(
        default=None,
        description="Optional base URL for an OpenAI-compatible image endpoint.",
    )

    openai_image_model_id: str = Field(
        default="gpt-image-1",
        description="OpenAI model id used for image edits.",
    )

    #----------------------------------------------------------
    # Generation settings
    #----------------------------------------------------------
    session_ttl_seconds: float | None = Field(
        default=3600.0,
        gt=0,
        description="Idle time after which a session and its images are dropped. None keeps sessions until deleted.",
    )
    max_upload_bytes: int = Field(
        default=20 * 1024 * 1024,
        gt=0,
        description="Largest source image accepted by the upload endpoint.",
    )

    #----------------------------------------------------------
    # HTTP settings
    #----------------------------------------------------------
    cors_origins: List[str] = Field(
        default=["*"],
        description="Origins allowed to call the API from a browser.",
    )

    model_config = SettingsConfigDict(
        env_prefix="PRODUCTSTUDIO_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
