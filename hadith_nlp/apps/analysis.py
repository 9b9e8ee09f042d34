"""Single-text analysis: narrators, language, sentiment, readability, key terms."""

from __future__ import annotations

import asyncio
import logging
import re
import string
import time
from typing import Any, List, Optional, Sequence

from .backends import SentimentBackend
from .errors import AnalysisFailure, EngineError
from .extraction import NarratorExtractor
from .lexicons import DOMAIN_TERMS_NORMALIZED
from .models import Language, NarratorMention, Sentiment, TextAnalysisResult
from .normalization import normalize, preview

LOGGER = logging.getLogger(__name__)

NEUTRAL_CONFIDENCE = 0.5
MAX_KEY_TERMS = 10

ARABIC_CHAR_PATTERN = re.compile(r"[\u0600-\u06ff]")
LATIN_CHAR_PATTERN = re.compile(r"[A-Za-z]")
SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?\u061f]")
ARABIC_TOKEN_PATTERN = re.compile(r"^[\u0621-\u064a\u0671-\u06d3]+$")
_TOKEN_EDGES = string.punctuation + "،؛؟«»“”"


def detect_language(text: str) -> Language:
    arabic = len(ARABIC_CHAR_PATTERN.findall(text))
    latin = len(LATIN_CHAR_PATTERN.findall(text))
    if arabic + latin == 0:
        return "mixed"
    ratio = arabic / (arabic + latin)
    if ratio > 0.7:
        return "arabic"
    if ratio < 0.3:
        return "english"
    return "mixed"


def count_sentences(text: str) -> int:
    segments = [s for s in SENTENCE_SPLIT_PATTERN.split(text) if s.strip()]
    return max(1, len(segments))


def readability_score(text: str) -> float:
    """100 minus twice the average sentence length in words, clamped to [0, 100]."""
    words = len(text.split())
    average = words / count_sentences(text)
    return round(min(100.0, max(0.0, 100.0 - 2.0 * average)), 2)


def extract_key_terms(normalized_text: str, limit: int = MAX_KEY_TERMS) -> List[str]:
    terms: List[str] = []
    seen = set()
    for raw in normalized_text.split():
        token = raw.strip(_TOKEN_EDGES)
        if not token or token in seen:
            continue
        if token in DOMAIN_TERMS_NORMALIZED or ARABIC_TOKEN_PATTERN.match(token):
            seen.add(token)
            terms.append(token)
            if len(terms) >= limit:
                break
    return terms


def overall_confidence(mentions: Sequence[NarratorMention]) -> float:
    if not mentions:
        return NEUTRAL_CONFIDENCE
    mean = sum(m.confidence for m in mentions) / len(mentions)
    return round(min(1.0, max(0.0, mean)), 3)


def map_sentiment(output: Any, min_score: float = 0.6) -> Sentiment:
    """Map a classifier's top prediction onto positive/negative/neutral."""
    if isinstance(output, list):
        output = output[0] if output else None
    if isinstance(output, list):  # pipelines called with top_k return nested lists
        output = output[0] if output else None
    if not isinstance(output, dict):
        return "neutral"
    label = str(output.get("label", "")).lower()
    score = float(output.get("score") or 0.0)
    if score < min_score:
        return "neutral"
    if label.startswith("pos") or label in {"label_1", "1"}:
        return "positive"
    if label.startswith("neg") or label in {"label_0", "0"}:
        return "negative"
    return "neutral"


class TextAnalyzer:
    """Assembles one :class:`TextAnalysisResult` per input text."""

    def __init__(
        self,
        extractor: NarratorExtractor,
        sentiment: Optional[SentimentBackend] = None,
        *,
        sentiment_min_score: float = 0.6,
    ) -> None:
        self.extractor = extractor
        self.sentiment = sentiment
        self.sentiment_min_score = sentiment_min_score

    @property
    def ready(self) -> bool:
        return self.extractor.ready and self.sentiment is not None

    async def classify_sentiment(self, text: str) -> Sentiment:
        if self.sentiment is None or not text.strip():
            return "neutral"
        try:
            output = await asyncio.to_thread(self.sentiment, text)
        except Exception as exc:
            LOGGER.warning("Sentiment classification failed for %r: %s", preview(text), exc)
            return "neutral"
        return map_sentiment(output, self.sentiment_min_score)

    async def _key_terms(self, normalized_text: str) -> List[str]:
        return extract_key_terms(normalized_text)

    async def analyze(self, text: str) -> TextAnalysisResult:
        if not self.ready:
            raise AnalysisFailure(
                "Extraction or classification models are not loaded", operation="analyze"
            )

        start = time.perf_counter()
        original = text or ""
        normalized = normalize(original)
        try:
            report, sentiment, key_terms = await asyncio.gather(
                self.extractor.extract(original),
                self.classify_sentiment(original),
                self._key_terms(normalized),
            )
        except EngineError:
            raise
        except Exception as exc:
            elapsed = time.perf_counter() - start
            LOGGER.exception(
                "analyze failed after %.3fs for %r", elapsed, preview(original)
            )
            raise AnalysisFailure(f"Analysis failed: {exc}", operation="analyze") from exc

        if report.degraded:
            LOGGER.warning(
                "Narrator extraction degraded for %r: %s",
                preview(original),
                "; ".join(report.warnings) or "no detail",
            )

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        result = TextAnalysisResult(
            original_text=original,
            normalized_text=normalized,
            narrator_mentions=report.mentions,
            overall_confidence=overall_confidence(report.mentions),
            language=detect_language(normalized),
            sentiment=sentiment,
            readability_score=readability_score(normalized),
            key_terms=key_terms,
            word_count=len(normalized.split()),
            processing_time_ms=round(elapsed_ms, 3),
            extraction_degraded=report.degraded,
            warnings=list(report.warnings),
        )
        LOGGER.info(
            "Analyzed text (%d mentions, confidence %.3f) in %.1fms",
            len(result.narrator_mentions),
            result.overall_confidence,
            elapsed_ms,
        )
        return result


__all__ = [
    "NEUTRAL_CONFIDENCE",
    "TextAnalyzer",
    "detect_language",
    "readability_score",
    "count_sentences",
    "extract_key_terms",
    "overall_confidence",
    "map_sentiment",
]
