"""Environment-driven settings."""

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Read from the process environment; main.py loads .env into it first.

    Each field maps to the upper-cased variable of the same name, except the
    two model names, which use the ``OPENAI_`` prefix.
    """

    openai_api_key: str | None = None
    model: str = Field("gpt-4o-mini", validation_alias=AliasChoices("model", "OPENAI_MODEL"))
    vision_model: str = Field(
        "gpt-4o", validation_alias=AliasChoices("vision_model", "OPENAI_VISION_MODEL")
    )
    database_url: str = "sqlite:///business.db"
    knowledge_source_id: str | None = None
    index_path: Path = Path(".chroma_db")
    documents_dir: Path = Path("documents")
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    rerank_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"
    telemetry_path: Path = Path("outputs/query_metrics.jsonl")
    log_level: str = "INFO"

    model_config = SettingsConfigDict(extra="ignore")

    @field_validator("knowledge_source_id", mode="before")
    @classmethod
    def _blank_source_is_unset(cls, value):
        return value or None

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()
