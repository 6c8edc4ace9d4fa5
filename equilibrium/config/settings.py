"""Configuration management for Equilibrium."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Document store
    db_path: Path = Path("./data/mental_health.db")

    # Embedding model settings
    embedding_model: str = "paraphrase-multilingual-MiniLM-L12-v2"
    embedding_device: str = "cpu"
    embedding_output: str = "sentence_embedding"  # or "token_embeddings" (mean-pooled)
    embedding_max_tokens: int = 128

    # Language model settings
    llm_model_path: Path = Path("./models/gemma-2-2b-it-q4_k_m.gguf")
    llm_context_window: int = 2048
    llm_threads: int = 4
    llm_temperature: float = 0.7
    llm_max_tokens: int = 512

    # RAG settings
    retrieval_top_k: int = 3
    retrieval_threshold: float = 0.1
    max_context_length: int = 2000

    # Generation
    generation_timeout: float | None = None
    system_prompt: str | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("retrieval_threshold")
    @classmethod
    def check_threshold(cls, value: float) -> float:
        """Cosine similarity thresholds live in [-1, 1]."""
        if not -1.0 <= value <= 1.0:
            raise ValueError("retrieval_threshold must be within [-1, 1]")
        return value

    @field_validator("embedding_output")
    @classmethod
    def check_embedding_output(cls, value: str) -> str:
        if value not in ("sentence_embedding", "token_embeddings"):
            raise ValueError("embedding_output must be 'sentence_embedding' or 'token_embeddings'")
        return value

    @field_validator("retrieval_top_k", "max_context_length", "llm_max_tokens")
    @classmethod
    def check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value


# Global settings instance
settings = Settings()
