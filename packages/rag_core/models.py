from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Document(BaseModel):
    """Raw document text as returned by a loader."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(..., description="Full plain text of the document.")
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Loader-provided metadata such as source path or URL.",
    )


class Chunk(BaseModel):
    """Normalized chunk schema: a contiguous slice of one document."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Plain text used for embeddings and generation.")
    source_index: int = Field(
        ...,
        ge=0,
        description="Position of the source document in the loader output.",
    )
    start_offset: int = Field(
        ...,
        ge=0,
        description="Character offset of the chunk within the document content.",
    )
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Metadata copied from the source document.",
    )


@dataclass(frozen=True)
class StoreRecord:
    """One persisted (vector, chunk) pair of a vector store."""

    vector: Tuple[float, ...]
    chunk: Chunk

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class SearchResult:
    chunk: Chunk
    score: float


__all__ = ["Document", "Chunk", "StoreRecord", "SearchResult"]
