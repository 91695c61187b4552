from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .exceptions import ConfigurationError
from .models import Chunk, Document

_log = logging.getLogger(__name__)

DEFAULT_SEPARATORS: Tuple[str, ...] = ("\n\n", "\n", " ", "")

# (start, end) character span within the input text
Span = Tuple[int, int]


class RecursiveTextSplitter:
    """
    Split text into overlapping, size-bounded chunks.

    The text is cut with the coarsest separator that occurs in it; pieces are
    packed greedily into chunks of at most ``chunk_size`` characters, and only
    pieces that do not fit are cut again with the next separator. Every chunk
    is a contiguous slice of the input, so its offset is exact and the last
    ``chunk_overlap`` characters of a chunk open the next one.

    A piece that cannot be cut any further (no separators left) and is still
    longer than ``chunk_size`` is emitted as-is. Such overflow chunks do not
    take part in overlap. The overlap is also dropped when the separators
    between it and the next piece leave no room for that piece, or when an
    indivisible piece only fits on its own; the next chunk then starts at the
    piece itself rather than cutting it into characters.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Sequence[str] = DEFAULT_SEPARATORS,
    ) -> None:
        if chunk_size <= 0:
            raise ConfigurationError(
                f"chunk_size must be positive, got {chunk_size}", field="chunk_size"
            )
        if chunk_overlap < 0:
            raise ConfigurationError(
                f"chunk_overlap must not be negative, got {chunk_overlap}", field="chunk_overlap"
            )
        if chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})",
                field="chunk_overlap",
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators: Tuple[str, ...] = tuple(separators)

    def _split_span(self, text: str, start: int, end: int, level: int) -> Optional[Tuple[List[Span], int]]:
        """
        Cut ``text[start:end]`` with the first separator, from ``level`` on, that occurs in it.

        Returns the non-empty pieces together with the separator level the
        pieces continue from, or None when the span cannot be cut.
        """
        for idx in range(level, len(self.separators)):
            separator = self.separators[idx]
            if separator == "":
                if end - start > 1:
                    return [(i, i + 1) for i in range(start, end)], idx + 1
                return None

            pos = text.find(separator, start, end)
            if pos == -1:
                continue

            pieces: list[Span] = []
            piece_start = start
            while pos != -1:
                if pos > piece_start:
                    pieces.append((piece_start, pos))
                piece_start = pos + len(separator)
                pos = text.find(separator, piece_start, end)
            if end > piece_start:
                pieces.append((piece_start, end))
            return pieces, idx + 1
        return None

    def split_spans(self, text: str) -> List[Span]:
        """Return the (start, end) spans of all chunks of ``text`` in order."""
        if not text:
            return []

        size = self.chunk_size
        overlap = self.chunk_overlap

        spans: list[Span] = []
        stack: list[Tuple[int, int, int]] = [(0, len(text), 0)]

        buf_start = buf_end = 0
        has_buffer = False
        # True once the buffer holds more than the overlap carried over
        fresh = False

        while stack:
            start, end, level = stack.pop()

            if has_buffer and end - buf_start <= size:
                buf_end = end
                fresh = True
                continue
            if not has_buffer and end - start <= size:
                buf_start, buf_end = start, end
                has_buffer = fresh = True
                continue

            if fresh:
                spans.append((buf_start, buf_end))
                if overlap > 0:
                    buf_start = max(buf_start, buf_end - overlap)
                else:
                    has_buffer = False
                fresh = False
                stack.append((start, end, level))
                continue

            if has_buffer and start - buf_start >= size:
                # Separator run after the carried overlap fills the whole chunk.
                _log.debug("Dropping overlap before separator gap at offset %d", start)
                has_buffer = False
                stack.append((start, end, level))
                continue

            split = self._split_span(text, start, end, level)
            if split is not None:
                pieces, next_level = split
                stack.extend((s, e, next_level) for s, e in reversed(pieces))
                continue

            if end - start <= size:
                # Indivisible piece that only fits without the carried overlap.
                buf_start, buf_end = start, end
                has_buffer = fresh = True
                continue

            _log.debug("Emitting overflow chunk of %d chars at offset %d", end - start, start)
            spans.append((start, end))
            has_buffer = fresh = False

        if has_buffer and fresh:
            spans.append((buf_start, buf_end))
        return spans

    def split_text(self, text: str) -> List[Tuple[int, str]]:
        """Split ``text`` into (start_offset, chunk_text) pairs."""
        return [(start, text[start:end]) for start, end in self.split_spans(text)]

    def split_document(self, document: Document, source_index: int = 0) -> List[Chunk]:
        return [
            Chunk(
                text=chunk_text,
                source_index=source_index,
                start_offset=start,
                metadata=dict(document.metadata),
            )
            for start, chunk_text in self.split_text(document.content)
        ]

    def split_documents(self, documents: Iterable[Document]) -> List[Chunk]:
        """Split a loader's output; ``source_index`` is each document's position in it."""
        chunks: list[Chunk] = []
        n_docs = 0
        for idx, document in enumerate(documents):
            chunks.extend(self.split_document(document, source_index=idx))
            n_docs += 1
        _log.info(
            "Split %d documents into %d chunks (chunk_size=%d, chunk_overlap=%d)",
            n_docs,
            len(chunks),
            self.chunk_size,
            self.chunk_overlap,
        )
        return chunks


def split(
    document: Document,
    chunk_size: int,
    chunk_overlap: int,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    source_index: int = 0,
) -> List[Chunk]:
    """Split a single document with a one-off splitter."""
    splitter = RecursiveTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=separators,
    )
    return splitter.split_document(document, source_index=source_index)


__all__ = [
    "DEFAULT_SEPARATORS",
    "RecursiveTextSplitter",
    "split",
]
