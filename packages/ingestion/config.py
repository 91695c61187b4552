from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

from pydantic import AliasChoices, Field, SecretStr, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rag_core.chunking import DEFAULT_SEPARATORS
from rag_core.embeddings import DEFAULT_MODEL_NAME
from rag_core.exceptions import ConfigurationError
from rag_core.llm import DEFAULT_MODEL_ID, DEFAULT_SYSTEM_PROMPT


class DocQASettings(BaseSettings):
    """Configuration for ingestion, retrieval and the agent."""

    model_config = SettingsConfigDict(
        env_prefix="DOCQA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    project_root: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parents[2],
        description="Repository root directory.",
    )

    source_dir: Path = Field(
        default_factory=lambda: Path("data") / "sources",
        description="Directory scanned by `docqa ingest --source-dir` when no path is given.",
    )

    store_dir: Path = Field(
        default_factory=lambda: Path("data") / "store",
        description="Directory holding the persisted vector store.",
    )

    # Chunking
    chunk_size: int = Field(200, gt=0, description="Maximum chunk length in characters.")
    chunk_overlap: int = Field(50, ge=0, description="Characters shared by consecutive chunks.")
    separators: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SEPARATORS),
        min_length=1,
        description="Separators tried from coarsest to finest.",
    )

    # Embeddings
    embedding_model: str = Field(DEFAULT_MODEL_NAME, description="FlagEmbedding model name.")
    embedding_batch_size: int = Field(16, gt=0, description="Texts per embedding call.")
    embedding_max_length: int = Field(8192, gt=0, description="Maximum tokens per text.")
    embedding_workers: int = Field(1, gt=0, description="Parallel embedding sub-batches.")

    # Language model
    llm_model: str = Field(DEFAULT_MODEL_ID, description="Groq model id.")
    temperature: float = Field(0.5, ge=0.0, le=2.0)
    max_tokens: int = Field(1500, gt=0)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    groq_api_key: Optional[SecretStr] = Field(
        None,
        validation_alias=AliasChoices("DOCQA_GROQ_API_KEY", "GROQ_API_KEY"),
    )

    # Tools
    searchapi_api_key: Optional[SecretStr] = Field(
        None,
        validation_alias=AliasChoices("DOCQA_SEARCHAPI_API_KEY", "SEARCHAPI_API_KEY"),
    )
    search_engine: str = "google"

    retrieval_k: int = Field(4, ge=0, description="Chunks retrieved per question.")
    agent_max_steps: int = Field(15, gt=0, description="Thinking calls before the agent gives up.")

    @model_validator(mode="after")
    def _check_overlap(self) -> "DocQASettings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than chunk_size ({self.chunk_size})"
            )
        return self

    def resolve_paths(self) -> "DocQASettings":
        """Return a copy with all relative paths resolved against project_root."""

        def _resolve(path: Path) -> Path:
            if path.is_absolute():
                return path
            return self.project_root / path

        return self.model_copy(
            update={
                "source_dir": _resolve(self.source_dir),
                "store_dir": _resolve(self.store_dir),
            }
        )


def get_settings(**overrides: Any) -> DocQASettings:
    """Return validated settings with resolved paths."""
    try:
        settings = DocQASettings(**overrides)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid configuration: {first.get('msg', exc)}",
            field=field,
            details={"errors": exc.error_count()},
        ) from exc
    return settings.resolve_paths()


__all__ = ["DocQASettings", "get_settings"]
