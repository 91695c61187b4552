"""
Shared test fixtures for the docqa test suite.

Provides: deterministic fake embeddings, a scripted language model, sample chunks
Dependencies: pytest
System role: Stand-ins for the BGE-M3 model and the Groq API so no test needs a network
"""

import re
from typing import Dict, Iterator, List, Optional, Sequence

import pytest

from rag_core.models import Chunk


class FakeEmbeddings:
    """
    Embeddings looked up from a fixed table.

    Unknown texts get a vector derived from their character codes so results
    stay deterministic.
    """

    def __init__(self, table: Optional[Dict[str, List[float]]] = None, dimension: int = 3):
        self.table = dict(table or {})
        self.dimension = dimension
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> List[float]:
        if text in self.table:
            return list(self.table[text])
        vec = [0.0] * self.dimension
        for idx, ch in enumerate(text):
            vec[idx % self.dimension] += float(ord(ch) % 7 + 1)
        return vec

    def embed(self, text: str) -> List[float]:
        self.calls.append([text])
        return self._vector(text)

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]


class ScriptedLLM:
    """Language model that replays canned completions and records its prompts."""

    def __init__(self, responses: Sequence[str], tokens: Optional[Sequence[str]] = None):
        self.responses = list(responses)
        self.tokens = list(tokens) if tokens is not None else None
        self.prompts: List[str] = []
        self.stops: List[Optional[Sequence[str]]] = []
        self.messages: List[List[Dict[str, str]]] = []

    def _next(self) -> str:
        if not self.responses:
            raise AssertionError("ScriptedLLM ran out of responses")
        return self.responses.pop(0)

    def complete(self, prompt: str, stop: Optional[Sequence[str]] = None) -> str:
        self.prompts.append(prompt)
        self.stops.append(stop)
        return self._next()

    def stream(self, prompt: str, stop: Optional[Sequence[str]] = None) -> Iterator[str]:
        self.prompts.append(prompt)
        self.stops.append(stop)
        if self.tokens is not None:
            yield from self.tokens
        else:
            yield from re.findall(r"\s*\S+", self._next())

    def chat(self, messages: Sequence[Dict[str, str]], stop: Optional[Sequence[str]] = None) -> str:
        self.messages.append(list(messages))
        self.stops.append(stop)
        return self._next()


def make_chunk(text: str, source_index: int = 0, start_offset: int = 0, **metadata: str) -> Chunk:
    return Chunk(text=text, source_index=source_index, start_offset=start_offset, metadata=metadata)


@pytest.fixture
def three_chunks() -> List[Chunk]:
    """Three chunks with orthogonal-ish embeddings in ``embeddings_table``."""
    return [
        make_chunk("alpha", 0, 0),
        make_chunk("beta", 0, 6),
        make_chunk("gamma", 1, 0),
    ]


@pytest.fixture
def embeddings_table() -> Dict[str, List[float]]:
    return {
        "alpha": [1.0, 0.0, 0.0],
        "beta": [0.0, 1.0, 0.0],
        "gamma": [0.6, 0.0, 0.8],
    }


@pytest.fixture
def fake_embeddings(embeddings_table) -> FakeEmbeddings:
    return FakeEmbeddings(embeddings_table)
