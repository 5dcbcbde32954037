from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    openrouter_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENROUTER_API_KEY", "OPENAI_API_KEY"),
    )
    llm_model_id: str = Field(default="openai/gpt-4o-mini", alias="LLM_MODEL_ID")
    llm_timeout_seconds: float = Field(default=15.0, alias="LLM_TIMEOUT_SECONDS", gt=0)
    llm_max_tokens: int = Field(default=200, alias="LLM_MAX_TOKENS", ge=1)
    llm_temperature: float = Field(default=0.7, alias="LLM_TEMPERATURE", ge=0, le=2)
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8787, alias="PORT", ge=1, le=65535)
    cors_allow_origins_raw: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")
    max_body_bytes: int = Field(default=200 * 1024, alias="MAX_BODY_BYTES", ge=1)

    @property
    def has_llm_credential(self) -> bool:
        return bool(self.openrouter_api_key and self.openrouter_api_key.strip())

    @property
    def cors_allow_origins(self) -> list[str]:
        raw = self.cors_allow_origins_raw
        origins = [item.strip() for item in raw.split(",") if item.strip()]
        return origins or ["*"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
