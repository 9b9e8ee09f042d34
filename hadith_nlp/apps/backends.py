"""Model loaders for the NER, sentiment and sentence-embedding backends."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Protocol, Sequence

from tenacity import before_sleep_log, retry, stop_after_attempt, wait_random_exponential

from .errors import InitializationFailure

try:  # pragma: no cover - optional dependency check
    from transformers import pipeline as hf_pipeline
except Exception:  # pragma: no cover - handle missing dependency gracefully
    hf_pipeline = None  # type: ignore[assignment]

try:  # pragma: no cover - optional dependency check
    from sentence_transformers import SentenceTransformer
except Exception:  # pragma: no cover - handle missing dependency gracefully
    SentenceTransformer = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

# transformers pipelines are plain callables returning lists of dicts
NerBackend = Callable[[str], List[Dict[str, Any]]]
SentimentBackend = Callable[[str], List[Dict[str, Any]]]


class Encoder(Protocol):
    def encode(self, sentences: Sequence[str], **kwargs: Any) -> Any:
        ...


def _device_index(device: str) -> int:
    if device.startswith("cuda"):
        _, _, index = device.partition(":")
        return int(index or 0)
    return -1


def _load_with_retry(description: str, loader: Callable[[], Any], attempts: int) -> Any:
    @retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_random_exponential(multiplier=0.5, max=5),
        before_sleep=before_sleep_log(LOGGER, logging.WARNING),
    )
    def _attempt() -> Any:
        return loader()

    start = time.perf_counter()
    try:
        model = _attempt()
    except Exception as exc:
        LOGGER.error("Failed to load %s after %d attempt(s): %s", description, attempts, exc)
        raise InitializationFailure(
            f"Failed to load {description}: {exc}", operation="initialize"
        ) from exc
    LOGGER.info("Loaded %s in %.2fs", description, time.perf_counter() - start)
    return model


def load_ner_pipeline(model_name: str, *, device: str = "cpu", attempts: int = 3) -> NerBackend:
    """Return a token-classification pipeline grouping sub-tokens into entities."""
    if hf_pipeline is None:
        raise InitializationFailure(
            "transformers is not installed; install it to enable named-entity recognition",
            operation="initialize",
        )
    return _load_with_retry(
        f"NER model '{model_name}'",
        lambda: hf_pipeline(
            "token-classification",
            model=model_name,
            aggregation_strategy="simple",
            device=_device_index(device),
        ),
        attempts,
    )


def load_sentiment_pipeline(
    model_name: str, *, device: str = "cpu", attempts: int = 3
) -> SentimentBackend:
    """Return a binary text-classification pipeline."""
    if hf_pipeline is None:
        raise InitializationFailure(
            "transformers is not installed; install it to enable sentiment classification",
            operation="initialize",
        )
    return _load_with_retry(
        f"sentiment model '{model_name}'",
        lambda: hf_pipeline(
            "text-classification",
            model=model_name,
            truncation=True,
            device=_device_index(device),
        ),
        attempts,
    )


def load_encoder(model_name: str, *, device: str = "cpu", attempts: int = 3) -> Encoder:
    """Return a sentence-transformers encoder (mean pooling over tokens)."""
    if SentenceTransformer is None:
        raise InitializationFailure(
            "sentence-transformers is not installed; install it to generate embeddings",
            operation="initialize",
        )
    return _load_with_retry(
        f"embedding model '{model_name}'",
        lambda: SentenceTransformer(model_name, device=device),
        attempts,
    )


__all__ = [
    "NerBackend",
    "SentimentBackend",
    "Encoder",
    "load_ner_pipeline",
    "load_sentiment_pipeline",
    "load_encoder",
]
