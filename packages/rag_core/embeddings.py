from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from .exceptions import UpstreamServiceError

if TYPE_CHECKING:
    from FlagEmbedding import BGEM3FlagModel

_log = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "BAAI/bge-m3"


@runtime_checkable
class EmbeddingClient(Protocol):
    """Turns text into fixed-dimension vectors."""

    def embed(self, text: str) -> List[float]:
        ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


def _get_device() -> str:
    """Return device string, prefer GPU when available."""
    import torch

    if torch.cuda.is_available():
        return "cuda"
    return "cpu"


class BGEM3Embeddings:
    """
    Dense BGE-M3 embeddings computed locally with FlagEmbedding.

    The model is loaded lazily on first use; torch and FlagEmbedding are only
    imported at that point so that the rest of the package works without them.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        batch_size: int = 16,
        max_length: int = 8192,
        device: Optional[str] = None,
    ) -> None:
        self.model_name = model_name
        self.batch_size = batch_size
        self.max_length = max_length
        self._device = device
        self._model: BGEM3FlagModel | None = None

    def get_model(self) -> BGEM3FlagModel:
        """Lazily load the BGE-M3 embedding model."""
        if self._model is not None:
            return self._model

        from FlagEmbedding import BGEM3FlagModel

        device = self._device or _get_device()
        use_fp16 = device == "cuda"

        _log.info("Loading BGEM3FlagModel '%s' on device=%s (fp16=%s)", self.model_name, device, use_fp16)
        self._model = BGEM3FlagModel(
            self.model_name,
            use_fp16=use_fp16,
            device=device,
        )
        return self._model

    def embed_dense(self, texts: Sequence[str]) -> np.ndarray:
        """Compute dense embeddings for ``texts`` as a float32 matrix."""
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)

        model = self.get_model()
        _log.info(
            "Encoding %d texts with BGE-M3 (batch_size=%d, max_length=%d)",
            len(texts),
            self.batch_size,
            self.max_length,
        )
        try:
            outputs = model.encode(
                list(texts),
                batch_size=self.batch_size,
                max_length=self.max_length,
                return_dense=True,
                return_sparse=False,
                return_colbert_vecs=False,
            )
        except Exception as exc:  # noqa: BLE001
            raise UpstreamServiceError(
                f"BGE-M3 encoding failed: {exc}", service="embeddings"
            ) from exc

        return np.asarray(outputs["dense_vecs"], dtype=np.float32)

    def embed(self, text: str) -> List[float]:
        return self.embed_dense([text])[0].tolist()

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        return self.embed_dense(texts).tolist()


__all__ = ["EmbeddingClient", "BGEM3Embeddings", "DEFAULT_MODEL_NAME"]
