"""Engine settings resolved from explicit values, environment, or defaults."""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "HADITH_NLP_"

DEFAULT_NER_MODEL = "Davlan/bert-base-multilingual-cased-ner-hrl"
DEFAULT_SENTIMENT_MODEL = "distilbert-base-uncased-finetuned-sst-2-english"
DEFAULT_EMBEDDING_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"


class EngineSettings(BaseModel):
    """Tunable parameters of the text-analysis engine."""

    ner_model: str = DEFAULT_NER_MODEL
    sentiment_model: str = DEFAULT_SENTIMENT_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    device: str = "cpu"

    pattern_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    ner_min_score: float = Field(default=0.5, ge=0.0, le=1.0)
    sentiment_min_score: float = Field(default=0.6, ge=0.0, le=1.0)
    max_mentions: int = Field(default=20, ge=1)

    max_batch_items: int = Field(default=50, ge=1)
    batch_retention_seconds: float = Field(default=300.0, ge=0.0)
    poll_interval_seconds: float = Field(default=2.0, gt=0.0)
    call_timeout_seconds: float = Field(default=60.0, gt=0.0)

    embedding_cache_size: int = Field(default=512, ge=0)
    result_cache_size: int = Field(default=100, ge=0)
    result_cache_ttl_seconds: float = Field(default=300.0, ge=0.0)
    corpus_directory: str = "data/indexes/corpus"
    corpus_collection: str = "hadith_corpus"
    load_attempts: int = Field(default=3, ge=1)

    model_config = {
        "extra": "ignore",
        "protected_namespaces": (),
    }

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "EngineSettings":
        """Build settings from ``HADITH_NLP_*`` variables; explicit overrides win."""

        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name, field in cls.model_fields.items():
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            values[name] = _coerce(name, raw, field.annotation)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _coerce(name: str, raw: str, annotation: Any) -> Any:
    if annotation in (int, "int"):
        caster: Any = int
    elif annotation in (float, "float"):
        caster = float
    else:
        return raw
    try:
        return caster(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {ENV_PREFIX}{name.upper()} value: {raw!r}") from exc


__all__ = [
    "ENV_PREFIX",
    "DEFAULT_NER_MODEL",
    "DEFAULT_SENTIMENT_MODEL",
    "DEFAULT_EMBEDDING_MODEL",
    "EngineSettings",
]
