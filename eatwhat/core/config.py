from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "local"
    api_prefix: str = "/api"
    api_version: str = "v1"
    port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./eatwhat.db"
    cors_allow_origins: list[str] = ["http://localhost:3000"]

    # LLM provider (any OpenAI-compatible endpoint)
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_recommend_model: str | None = None
    openai_extract_model: str | None = None
    openai_recipe_websearch_model: str | None = None
    openai_api_style: Literal["responses", "chat"] = "chat"
    llm_temperature: float = 0.4

    # Time budgets in seconds
    recommend_timeout_sec: float = 22.0
    recommend_lite_timeout_sec: float = 14.0
    recipe_timeout_sec: float = 20.0
    fill_timeout_sec: float = 12.0
    extract_timeout_sec: float = 8.0

    # In-process cache tiers
    recommend_cache_ttl_sec: int = 600
    recipe_cache_ttl_sec: int = 600
    image_cache_ttl_sec: int = 60 * 60 * 6
    extract_cache_ttl_sec: int = 60 * 30

    # Ingredient extraction circuit breaker
    breaker_failure_threshold: int = 5
    breaker_cooldown_sec: float = 600.0

    # Read-only resources
    corpus_index_path: Path = DATA_DIR / "howtocook-index.json"
    lexicon_path: Path = DATA_DIR / "ingredient-lexicon.json"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def split_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, list):
            return value
        if not value:
            return ["*"]
        return [origin.strip() for origin in value.split(",")]

    @property
    def recommend_model(self) -> str:
        return self.openai_recommend_model or self.openai_model

    @property
    def extract_model(self) -> str:
        return self.openai_extract_model or self.openai_model

    @property
    def websearch_model(self) -> str:
        return self.openai_recipe_websearch_model or self.recommend_model


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
