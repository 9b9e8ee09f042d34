"""Sentence embeddings and cosine similarity for hadith texts."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .backends import Encoder
from .errors import EmbeddingFailure, EngineError, ValidationFailure
from .models import CorpusEntry, SimilarityResult
from .normalization import normalize, preview

LOGGER = logging.getLogger(__name__)

SIMILARITY_DECIMALS = 4

CorpusInput = Union[Mapping[str, str], Sequence[Union[CorpusEntry, str]]]


def l2_normalize(vectors: np.ndarray) -> np.ndarray:
    """Scale each row to unit length; zero rows are rejected."""
    matrix = np.atleast_2d(np.asarray(vectors, dtype=np.float32))
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    if np.any(norms == 0) or not np.all(np.isfinite(norms)):
        raise EmbeddingFailure("Model produced a zero or non-finite embedding", operation="embed")
    return matrix / norms


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise EmbeddingFailure(
            f"Embedding dimensions differ: {a.shape} vs {b.shape}", operation="similarity"
        )
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        raise EmbeddingFailure("Cannot compare zero-length embeddings", operation="similarity")
    value = float(np.dot(a, b)) / denom
    return max(-1.0, min(1.0, value))


def coerce_corpus(corpus: CorpusInput) -> List[CorpusEntry]:
    """Turn a mapping of id -> text or a sequence of entries/texts into entries."""
    if isinstance(corpus, Mapping):
        items = [(str(key), value) for key, value in corpus.items()]
    elif isinstance(corpus, (str, bytes)) or not isinstance(corpus, Iterable):
        raise ValidationFailure("Corpus must be a mapping or a sequence of texts", operation="search_similar")
    else:
        items = [(str(index), item) for index, item in enumerate(corpus)]

    entries: List[CorpusEntry] = []
    for key, item in items:
        if isinstance(item, CorpusEntry):
            entries.append(item)
        elif isinstance(item, str):
            entries.append(CorpusEntry(id=key, text=item))
        else:
            raise ValidationFailure(
                f"Corpus entry '{key}' must be a string or CorpusEntry, got {type(item).__name__}",
                operation="search_similar",
            )
    return entries


class EmbeddingEngine:
    """Embeds normalized text and compares embeddings by cosine similarity."""

    def __init__(
        self,
        encoder: Optional[Encoder] = None,
        *,
        model_name: str = "",
        cache_size: int = 512,
    ) -> None:
        self.encoder = encoder
        self.model_name = model_name
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, np.ndarray]" = OrderedDict()
        self.cache_hits = 0
        self.embedded = 0

    @property
    def ready(self) -> bool:
        return self.encoder is not None

    def _cached(self, key: str) -> Optional[np.ndarray]:
        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
            self.cache_hits += 1
        return vector

    def _remember(self, key: str, vector: np.ndarray) -> None:
        if self.cache_size <= 0:
            return
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def embed_many(self, texts: Iterable[str]) -> np.ndarray:
        """Return one L2-normalized row per text, in input order."""
        keys = [normalize(text) for text in texts]
        if not keys:
            raise ValidationFailure("No texts supplied for embedding", operation="embed")
        if any(not key for key in keys):
            raise ValidationFailure("Text must be non-empty for embedding", operation="embed")
        if self.encoder is None:
            raise EmbeddingFailure("Embedding model is not loaded", operation="embed")

        found: Dict[str, np.ndarray] = {}
        missing: List[str] = []
        for key in keys:
            if key in found or key in missing:
                continue
            vector = self._cached(key)
            if vector is None:
                missing.append(key)
            else:
                found[key] = vector

        if missing:
            start = time.perf_counter()
            try:
                raw = await asyncio.to_thread(
                    self.encoder.encode,
                    missing,
                    batch_size=64,
                    show_progress_bar=False,
                    normalize_embeddings=True,
                    convert_to_numpy=True,
                )
                vectors = l2_normalize(raw)
            except EngineError:
                raise
            except Exception as exc:
                LOGGER.error(
                    "embed failed after %.3fs for %d text(s), first %r: %s",
                    time.perf_counter() - start,
                    len(missing),
                    preview(missing[0]),
                    exc,
                )
                raise EmbeddingFailure(f"Embedding generation failed: {exc}", operation="embed") from exc
            if vectors.shape[0] != len(missing):
                raise EmbeddingFailure(
                    f"Expected {len(missing)} embeddings, model returned {vectors.shape[0]}",
                    operation="embed",
                )
            for key, vector in zip(missing, vectors):
                vector.setflags(write=False)
                found[key] = vector
                self._remember(key, vector)
            self.embedded += len(missing)
            LOGGER.debug("Embedded %d text(s) in %.3fs", len(missing), time.perf_counter() - start)

        return np.stack([found[key] for key in keys])

    async def embed(self, text: str) -> np.ndarray:
        """Return the fixed-length, unit-norm embedding of ``text``."""
        matrix = await self.embed_many([text])
        vector = matrix[0]
        vector.setflags(write=False)
        return vector

    async def similarity(
        self,
        text_a: str,
        text_b: str,
        *,
        source_id: Optional[str] = None,
    ) -> SimilarityResult:
        start = time.perf_counter()
        vector_a, vector_b = await asyncio.gather(self.embed(text_a), self.embed(text_b))
        value = cosine_similarity(vector_a, vector_b)
        return SimilarityResult(
            similarity=round(value, SIMILARITY_DECIMALS),
            source_id=source_id,
            processing_time_ms=round((time.perf_counter() - start) * 1000.0, 3),
        )

    async def search(
        self,
        text: str,
        corpus: CorpusInput,
        *,
        top_k: int = 10,
        threshold: Optional[float] = None,
    ) -> List[SimilarityResult]:
        """Rank corpus entries by similarity to ``text``, most similar first."""
        start = time.perf_counter()
        entries = [entry for entry in coerce_corpus(corpus) if normalize(entry.text)]
        query = await self.embed(text)
        if not entries:
            return []

        matrix = await self.embed_many(entry.text for entry in entries)
        scores = matrix.astype(np.float64) @ query.astype(np.float64)
        ranked = sorted(
            zip(entries, scores.tolist()),
            key=lambda pair: (-pair[1], pair[0].id),
        )

        elapsed_ms = round((time.perf_counter() - start) * 1000.0, 3)
        results: List[SimilarityResult] = []
        for entry, score in ranked:
            value = round(max(-1.0, min(1.0, score)), SIMILARITY_DECIMALS)
            if threshold is not None and value < threshold:
                continue
            results.append(
                SimilarityResult(
                    similarity=value,
                    source_id=entry.id,
                    text=entry.text,
                    processing_time_ms=elapsed_ms,
                )
            )
            if len(results) >= max(1, int(top_k)):
                break
        return results


__all__ = [
    "SIMILARITY_DECIMALS",
    "CorpusInput",
    "EmbeddingEngine",
    "coerce_corpus",
    "cosine_similarity",
    "l2_normalize",
]
