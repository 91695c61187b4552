from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from .embeddings import EmbeddingClient
from .exceptions import InvalidArgumentError, NotInitializedError, TemplateError
from .llm import LanguageModel
from .models import Chunk, SearchResult
from .prompts import DEFAULT_QA_PROMPT, PromptTemplate
from .vectorstore import VectorStore

_log = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"

TokenCallback = Callable[[str], None]


class RetrievalAnswer(BaseModel):
    """Answer text together with the chunks it was grounded on."""

    text: str
    source_chunks: List[Chunk] = Field(default_factory=list)
    scores: List[float] = Field(default_factory=list)


def build_context(results: List[SearchResult]) -> str:
    """Join retrieved chunk texts, in result order, into one context block."""
    return CONTEXT_SEPARATOR.join(res.chunk.text for res in results)


class RetrievalChain:
    """
    Retrieval-augmented question answering over a VectorStore.

    The question is embedded with the same client that built the store, the
    top-k chunks are stuffed into the prompt's ``context`` variable and the
    language model answers. Passing ``on_token`` streams the answer.
    """

    def __init__(
        self,
        embeddings: EmbeddingClient,
        llm: LanguageModel,
        template: PromptTemplate = DEFAULT_QA_PROMPT,
        k: int = 4,
    ) -> None:
        self.embeddings = embeddings
        self.llm = llm
        self.template = template
        self.k = k

    def retrieve(self, question: str, store: VectorStore, k: int) -> List[SearchResult]:
        """Return the top-k results, or none for ``k == 0`` and an empty store."""
        if not store.is_initialized:
            raise NotInitializedError("Vector store must be built or loaded before answering")
        if k < 0:
            raise InvalidArgumentError(f"k must not be negative, got {k}", {"k": k})
        if k == 0 or len(store) == 0:
            _log.info("Skipping retrieval (k=%d, store size=%d); answering with empty context", k, len(store))
            return []

        query_vector = self.embeddings.embed(question)
        results = store.search(query_vector, k)
        _log.info("Retrieved %d chunks for question: %s", len(results), question[:50])
        return results

    def answer(
        self,
        question: str,
        store: VectorStore,
        template: Optional[PromptTemplate] = None,
        k: Optional[int] = None,
        on_token: Optional[TokenCallback] = None,
    ) -> RetrievalAnswer:
        template = template or self.template
        k = self.k if k is None else k

        unbound = sorted(template.input_variables - {"context", "question"})
        if unbound:
            raise TemplateError(
                f"Prompt variable(s) not supplied by the retrieval chain: {', '.join(unbound)}",
                details={"missing": unbound},
            )

        results = self.retrieve(question, store, k)
        prompt = template.format(context=build_context(results), question=question)

        if on_token is None:
            text = self.llm.complete(prompt)
        else:
            tokens: list[str] = []
            for token in self.llm.stream(prompt):
                on_token(token)
                tokens.append(token)
            text = "".join(tokens)

        return RetrievalAnswer(
            text=text,
            source_chunks=[res.chunk for res in results],
            scores=[res.score for res in results],
        )


__all__ = ["RetrievalChain", "RetrievalAnswer", "build_context", "CONTEXT_SEPARATOR"]
