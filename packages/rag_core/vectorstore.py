from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from .embeddings import EmbeddingClient
from .exceptions import (
    InvalidArgumentError,
    NotInitializedError,
    StoreCorruptError,
    UpstreamServiceError,
)
from .models import Chunk, SearchResult, StoreRecord

_log = logging.getLogger(__name__)

FORMAT_NAME = "docqa-vectorstore"
FORMAT_VERSION = 1

MANIFEST_FILE = "manifest.json"
VECTORS_FILE = "vectors.npy"
CHUNKS_FILE = "chunks.jsonl"

PathLike = Union[str, Path]


def _batch_iter(seq: Sequence, batch_size: int) -> Iterable[Sequence]:
    for i in range(0, len(seq), batch_size):
        yield seq[i : i + batch_size]


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(1 << 20), b""):
            digest.update(block)
    return digest.hexdigest()


def _embed_chunks(
    chunks: Sequence[Chunk],
    embeddings: EmbeddingClient,
    batch_size: int,
    max_workers: int,
) -> np.ndarray:
    """
    Embed chunk texts in batches and return a (n, dim) float32 matrix.

    With ``max_workers > 1`` the batches are embedded concurrently; rows are
    always reassembled in input order.
    """
    if batch_size <= 0:
        raise InvalidArgumentError(f"batch_size must be positive, got {batch_size}")

    texts = [c.text for c in chunks]
    batches = list(_batch_iter(texts, batch_size))
    _log.info("Embedding %d chunks in %d batches (max_workers=%d)", len(texts), len(batches), max_workers)

    if max_workers > 1 and len(batches) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(embeddings.embed_batch, batches))
    else:
        results = [embeddings.embed_batch(batch) for batch in batches]

    rows = [vec for batch_vectors in results for vec in batch_vectors]
    if len(rows) != len(texts):
        raise UpstreamServiceError(
            f"Embedding service returned {len(rows)} vectors for {len(texts)} texts",
            service="embeddings",
        )
    try:
        matrix = np.asarray(rows, dtype=np.float32)
    except ValueError as exc:
        raise UpstreamServiceError(
            "Embedding service returned vectors of inconsistent dimension", service="embeddings"
        ) from exc
    if matrix.ndim != 2 or matrix.shape[1] == 0:
        raise UpstreamServiceError(
            f"Embedding service returned an unusable matrix of shape {matrix.shape}",
            service="embeddings",
        )
    return matrix


class VectorStore:
    """
    Exact in-memory vector store over (vector, chunk) records.

    Search is a brute-force cosine similarity scan over all records; ties
    keep insertion order. The store is single-writer/multiple-reader and does
    no locking of its own: callers must not run ``add_documents`` or ``save``
    concurrently with ``search`` on the same instance.
    """

    def __init__(self) -> None:
        self._vectors: np.ndarray = np.zeros((0, 0), dtype=np.float32)
        self._norms: np.ndarray = np.zeros((0,), dtype=np.float32)
        self._chunks: list[Chunk] = []
        self._dimension: Optional[int] = None
        self._initialized = False

    def _set_records(self, vectors: np.ndarray, chunks: List[Chunk], dimension: Optional[int]) -> None:
        self._vectors = np.ascontiguousarray(vectors, dtype=np.float32)
        self._norms = np.linalg.norm(self._vectors, axis=1) if len(chunks) else np.zeros((0,), dtype=np.float32)
        self._chunks = chunks
        self._dimension = dimension
        self._initialized = True

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedError(
                f"Vector store must be built or loaded before {operation}",
                {"operation": operation},
            )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def __len__(self) -> int:
        return len(self._chunks)

    @classmethod
    def build(
        cls,
        chunks: Sequence[Chunk],
        embeddings: EmbeddingClient,
        batch_size: int = 32,
        max_workers: int = 1,
    ) -> "VectorStore":
        """Embed ``chunks`` and return a new store holding them in input order."""
        store = cls()
        store.add_documents(chunks, embeddings, batch_size=batch_size, max_workers=max_workers)
        _log.info("Built vector store with %d records (dim=%s)", len(store), store.dimension)
        return store

    def add_documents(
        self,
        chunks: Sequence[Chunk],
        embeddings: EmbeddingClient,
        batch_size: int = 32,
        max_workers: int = 1,
    ) -> None:
        """
        Append records for ``chunks`` after the existing ones.

        The store is only updated once every chunk has been embedded, so a
        failing embedding call leaves it exactly as it was.
        """
        chunks = list(chunks)
        if not chunks:
            if not self._initialized:
                self._set_records(self._vectors, [], None)
            return

        new_vectors = _embed_chunks(chunks, embeddings, batch_size=batch_size, max_workers=max_workers)
        dim = int(new_vectors.shape[1])
        if self._dimension is not None and dim != self._dimension:
            raise InvalidArgumentError(
                f"Embedding dimension {dim} does not match store dimension {self._dimension}",
                {"expected": self._dimension, "got": dim},
            )

        if self._chunks:
            vectors = np.vstack([self._vectors, new_vectors])
        else:
            vectors = new_vectors
        self._set_records(vectors, self._chunks + chunks, dim)
        _log.info("Added %d records to vector store (total=%d)", len(chunks), len(self._chunks))

    def _cosine_scores(self, query: np.ndarray) -> np.ndarray:
        dots = self._vectors @ query
        denom = self._norms * np.linalg.norm(query)
        return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)

    def search(self, query_vector: Sequence[float], k: int) -> List[SearchResult]:
        """Return the ``k`` records most similar to ``query_vector``, best first."""
        self._require_initialized("search")
        if k <= 0:
            raise InvalidArgumentError(f"k must be positive, got {k}", {"k": k})
        if not self._chunks:
            raise InvalidArgumentError("Cannot search an empty vector store")

        query = np.asarray(query_vector, dtype=np.float32).reshape(-1)
        if query.shape[0] != self._dimension:
            raise InvalidArgumentError(
                f"Query dimension {query.shape[0]} does not match store dimension {self._dimension}",
                {"expected": self._dimension, "got": int(query.shape[0])},
            )

        scores = self._cosine_scores(query)
        order = np.argsort(-scores, kind="stable")[:k]
        return [SearchResult(chunk=self._chunks[i], score=float(scores[i])) for i in order]

    def records(self) -> List[StoreRecord]:
        return [
            StoreRecord(vector=tuple(float(x) for x in row), chunk=chunk)
            for row, chunk in zip(self._vectors, self._chunks)
        ]

    def save(self, path: PathLike) -> Path:
        """
        Persist all records under directory ``path``.

        Layout: ``vectors.npy`` (float32 matrix), ``chunks.jsonl`` (one chunk
        per line, same order) and ``manifest.json`` with dimension, record
        count and checksums. The manifest is written last, so a directory
        whose save was interrupted never loads.
        """
        self._require_initialized("save")
        out_dir = Path(path)
        out_dir.mkdir(parents=True, exist_ok=True)

        manifest_path = out_dir / MANIFEST_FILE
        vectors_path = out_dir / VECTORS_FILE
        chunks_path = out_dir / CHUNKS_FILE

        if manifest_path.exists():
            manifest_path.unlink()

        with vectors_path.open("wb") as f_vec:
            np.save(f_vec, self._vectors, allow_pickle=False)

        with chunks_path.open("w", encoding="utf-8") as f_jsonl:
            for chunk in self._chunks:
                f_jsonl.write(chunk.model_dump_json() + "\n")

        manifest = {
            "format": FORMAT_NAME,
            "version": FORMAT_VERSION,
            "dimension": self._dimension,
            "count": len(self._chunks),
            "vectors_sha256": _sha256(vectors_path),
            "chunks_sha256": _sha256(chunks_path),
        }
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

        _log.info("Vector store saved to %s (%d records, dim=%s)", out_dir, len(self._chunks), self._dimension)
        return out_dir

    @classmethod
    def load(cls, path: PathLike) -> "VectorStore":
        """
        Reconstruct a store saved with :meth:`save`.

        Any missing file, checksum mismatch, shape or schema problem raises
        StoreCorruptError. A new store is returned; nothing else is touched.
        """
        in_dir = Path(path)
        where = str(in_dir)

        try:
            manifest = json.loads((in_dir / MANIFEST_FILE).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreCorruptError(f"Cannot read vector store manifest: {exc}", path=where) from exc

        if not isinstance(manifest, dict) or manifest.get("format") != FORMAT_NAME:
            raise StoreCorruptError("Not a docqa vector store manifest", path=where)
        if manifest.get("version") != FORMAT_VERSION:
            raise StoreCorruptError(
                f"Unsupported vector store version: {manifest.get('version')!r}", path=where
            )

        count = manifest.get("count")
        dimension = manifest.get("dimension")
        if not isinstance(count, int) or count < 0:
            raise StoreCorruptError(f"Invalid record count in manifest: {count!r}", path=where)
        if dimension is not None and (not isinstance(dimension, int) or dimension <= 0):
            raise StoreCorruptError(f"Invalid dimension in manifest: {dimension!r}", path=where)
        if count > 0 and dimension is None:
            raise StoreCorruptError("Manifest has records but no dimension", path=where)

        for file_name, key in ((VECTORS_FILE, "vectors_sha256"), (CHUNKS_FILE, "chunks_sha256")):
            try:
                digest = _sha256(in_dir / file_name)
            except OSError as exc:
                raise StoreCorruptError(f"Cannot read {file_name}: {exc}", path=where) from exc
            if digest != manifest.get(key):
                raise StoreCorruptError(f"Checksum mismatch for {file_name}", path=where)

        try:
            vectors = np.load(in_dir / VECTORS_FILE, allow_pickle=False)
        except (OSError, ValueError) as exc:
            raise StoreCorruptError(f"Cannot decode {VECTORS_FILE}: {exc}", path=where) from exc

        expected_shape = (count, dimension or 0)
        if vectors.dtype != np.float32 or vectors.shape != expected_shape:
            raise StoreCorruptError(
                f"Vector table has shape {vectors.shape} ({vectors.dtype}), expected {expected_shape} (float32)",
                path=where,
            )

        chunks: list[Chunk] = []
        try:
            with (in_dir / CHUNKS_FILE).open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    chunks.append(Chunk.model_validate_json(line))
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            raise StoreCorruptError(f"Cannot decode {CHUNKS_FILE}: {exc}", path=where) from exc

        if len(chunks) != count:
            raise StoreCorruptError(
                f"Manifest lists {count} records but {CHUNKS_FILE} holds {len(chunks)}", path=where
            )

        store = cls()
        store._set_records(vectors, chunks, dimension)
        _log.info("Loaded vector store from %s (%d records, dim=%s)", in_dir, count, dimension)
        return store


__all__ = ["VectorStore", "FORMAT_NAME", "FORMAT_VERSION", "MANIFEST_FILE", "VECTORS_FILE", "CHUNKS_FILE"]
