"""Embeddings Generation Module

Generates L2-normalized 384-dimension vector embeddings for interview text.
The embedding model is loaded lazily, once per process, behind a lock so
concurrent first callers share a single load.

Key features:
  - Blank text maps to an empty vector (never a zero vector)
  - Local sentence-transformers model by default, OpenAI as an alternative
  - Text truncation to fit the embedding model's context window
  - Batch processing with positional alignment for blank inputs
  - Exponential backoff retry logic for OpenAI rate limiting
  - Fake embeddings mode for testing without loading a model

Environment variables:
  EMBEDDING_BACKEND: 'local' (default), 'openai' or 'fake'
  USE_FAKE_EMBEDDINGS: Set to '1' to force the fake backend
  EMBEDDING_MODEL: sentence-transformers model name
  OPENAI_API_KEY: Required for the 'openai' backend
  OPENAI_EMBEDDING_MODEL: OpenAI model (default: text-embedding-3-small)
  MAX_EMBEDDING_CHARS: Maximum characters per text (default: 8000)
  EMBEDDING_BATCH_SIZE: Texts per encode call (default: 32)
"""

from typing import Any, List, Optional, Sequence
import hashlib
import os
import threading
import time
import logging

import numpy as np
import openai

from .index_config import EMBEDDING_DIMENSION

logger = logging.getLogger(__name__)

USE_FAKE_EMBEDDINGS = os.getenv("USE_FAKE_EMBEDDINGS", "0") == "1"
EMBEDDING_BACKEND = "fake" if USE_FAKE_EMBEDDINGS else os.getenv("EMBEDDING_BACKEND", "local")

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")

# MiniLM truncates at 256 word pieces on its own; this limit only keeps
# pathological inputs from reaching the tokenizer or the OpenAI API.
MAX_EMBEDDING_CHARS = int(os.getenv("MAX_EMBEDDING_CHARS", "8000"))
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "32"))


class EmbeddingFailure(RuntimeError):
    """Raised when the embedding model cannot be loaded or fails to encode."""


def _truncate_for_embedding(text: str, max_chars: int = MAX_EMBEDDING_CHARS) -> str:
    """
    Truncate text to fit embedding model's context window.

    Strategy:
    - If text <= max_chars: return as-is
    - If text > max_chars: truncate at max_chars, then backtrack to last space
      to avoid breaking words (if space found in last 20% of truncated text)
    """
    if not text:
        return ""

    if len(text) <= max_chars:
        return text

    original_len = len(text)
    truncated = text[:max_chars]

    last_space = truncated.rfind(" ")
    if last_space > int(max_chars * 0.8):
        truncated = truncated[:last_space]

    logger.info(
        "Truncated text for embedding: %d -> %d chars (%.1f%% reduction)",
        original_len,
        len(truncated),
        100 * (original_len - len(truncated)) / original_len,
    )

    return truncated


def _normalize_rows(vectors: Any) -> np.ndarray:
    """L2-normalize each row; all-zero rows are left as they are."""
    matrix = np.asarray(vectors, dtype=np.float64)
    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class HashingEncoder:
    """Deterministic stand-in for a real model.

    Each text seeds a generator from its SHA-256 digest, so identical texts
    always map to identical unit vectors. Intended for local/dev and tests.
    """

    def __init__(self, dimension: int = EMBEDDING_DIMENSION):
        self.dimension = dimension

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        rows = []
        for text in texts:
            digest = hashlib.sha256(text.encode("utf-8")).digest()
            rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))
            rows.append(rng.standard_normal(self.dimension))
        return _normalize_rows(rows)


class SentenceTransformerEncoder:
    """Local sentence-transformers model with mean pooling."""

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        return self.model.encode(
            list(texts),
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )


class OpenAIEncoder:
    """OpenAI embeddings shortened to the pipeline dimension."""

    def __init__(
        self,
        model: str = OPENAI_EMBEDDING_MODEL,
        dimension: int = EMBEDDING_DIMENSION,
        max_retries: int = 5,
    ):
        self.model = model
        self.dimension = dimension
        self.max_retries = max_retries
        self.client = openai.OpenAI(api_key=os.getenv("OPENAI_API_KEY"))

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        retries = 0
        while True:
            try:
                response = self.client.embeddings.create(
                    model=self.model,
                    input=list(texts),
                    dimensions=self.dimension,
                )
                return _normalize_rows([list(item.embedding) for item in response.data])
            except openai.RateLimitError as e:
                retries += 1
                # For pure "insufficient_quota" errors, retries won't help - fail fast
                if getattr(e, "code", None) == "insufficient_quota" or "insufficient_quota" in str(e):
                    logger.error("Insufficient quota - cannot retry. Error: %s", e)
                    raise

                if retries > self.max_retries:
                    logger.error(
                        "Max retries exceeded (%d). Last error: %s",
                        self.max_retries,
                        e,
                    )
                    raise

                wait_time = 2 ** retries
                logger.warning(
                    "Rate limit error from OpenAI (attempt %d/%d). "
                    "Sleeping for %d seconds before retry. Error: %s",
                    retries,
                    self.max_retries,
                    wait_time,
                    e,
                )
                time.sleep(wait_time)


def _load_model(backend: str, model_name: str) -> Any:
    """Construct the encoder for a backend. Slow for 'local'."""
    if backend == "fake":
        logger.warning(
            "Fake embeddings enabled; returning hash-seeded vectors instead of "
            "running a model. This is intended for local/dev and tests."
        )
        return HashingEncoder()
    if backend == "openai":
        return OpenAIEncoder(model=model_name)
    if backend == "local":
        return SentenceTransformerEncoder(model_name)
    raise ValueError(f"Unknown embedding backend: {backend!r}")


class EmbeddingModelHandle:
    """Process-wide, lazily initialized embedding model.

    The first get() loads the model under a lock; later calls return the
    cached instance without locking. There is no teardown.
    """

    def __init__(self, backend: Optional[str] = None, model_name: Optional[str] = None):
        self._backend = backend
        self._model_name = model_name
        self._model: Any = None
        self._lock = threading.Lock()
        self.load_count = 0

    @property
    def backend(self) -> str:
        return self._backend or EMBEDDING_BACKEND

    @property
    def model_name(self) -> str:
        if self._model_name:
            return self._model_name
        return OPENAI_EMBEDDING_MODEL if self.backend == "openai" else EMBEDDING_MODEL

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def get(self) -> Any:
        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is None:
                t0 = time.time()
                logger.info(
                    "Loading embedding model: backend=%s, model=%s",
                    self.backend,
                    self.model_name,
                )
                try:
                    model = _load_model(self.backend, self.model_name)
                except Exception as e:
                    logger.exception("Failed to load embedding model %s", self.model_name)
                    raise EmbeddingFailure(
                        f"Could not load embedding model {self.model_name!r}: {e}"
                    ) from e
                self.load_count += 1
                self._model = model
                logger.info("✓ Embedding model loaded in %.2fs", time.time() - t0)
        return self._model


_model_handle = EmbeddingModelHandle()


def get_model_handle() -> EmbeddingModelHandle:
    return _model_handle


def embed_texts(
    texts: Sequence[Optional[str]],
    batch_size: int = EMBEDDING_BATCH_SIZE,
    max_chars: int = MAX_EMBEDDING_CHARS,
) -> List[List[float]]:
    """
    Generate embeddings for texts, one vector per input position.

    Blank or whitespace-only texts (and None) get an empty list and are
    never sent to the model. The rest are truncated, encoded in batches
    and checked against EMBEDDING_DIMENSION.

    Args:
        texts: Texts to embed
        batch_size: Number of texts per encode call
        max_chars: Character limit per text

    Returns:
        List aligned with `texts`; each entry is [] or a unit vector

    Raises:
        EmbeddingFailure: If the model cannot be loaded, fails to encode,
            or returns vectors of the wrong dimension
    """
    vectors: List[List[float]] = [[] for _ in texts]
    positions = [i for i, text in enumerate(texts) if text and text.strip()]
    if not positions:
        logger.debug("embed_texts called with no non-blank text; returning empties")
        return vectors

    processed_texts = [
        _truncate_for_embedding(texts[i], max_chars) for i in positions
    ]
    model = _model_handle.get()

    try:
        for start in range(0, len(processed_texts), batch_size):
            batch = processed_texts[start : start + batch_size]
            end = start + len(batch) - 1

            logger.debug(
                "Encoding batch=[%d:%d], size=%d",
                start, end, len(batch)
            )

            batch_vectors = np.asarray(model.encode(batch), dtype=np.float64)

            if batch_vectors.shape != (len(batch), EMBEDDING_DIMENSION):
                raise EmbeddingFailure(
                    f"Unexpected embedding shape {batch_vectors.shape} for batch "
                    f"[{start}:{end}]: expected ({len(batch)}, {EMBEDDING_DIMENSION})"
                )

            for offset, row in enumerate(batch_vectors):
                vectors[positions[start + offset]] = row.tolist()

    except EmbeddingFailure:
        logger.exception("Failed to generate embeddings for %d texts", len(positions))
        raise
    except Exception as e:
        logger.exception("Failed to generate embeddings for %d texts", len(positions))
        raise EmbeddingFailure(f"Embedding inference failed: {e}") from e

    logger.debug(
        "Generated %d embeddings (dim=%d, %d blank inputs skipped)",
        len(positions), EMBEDDING_DIMENSION, len(texts) - len(positions)
    )
    return vectors


def embed_text(text: Optional[str]) -> List[float]:
    """Embed a single text; blank text returns []."""
    return embed_texts([text])[0]
