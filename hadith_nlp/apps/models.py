"""Pydantic models for narrator extraction, analysis, similarity and batches."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic.alias_generators import to_camel

from .errors import EngineError

NarratorCategory = Literal["narrator", "companion", "scholar", "uncertain"]
ExtractionMethod = Literal["pattern", "statistical"]
Language = Literal["arabic", "english", "mixed"]
Sentiment = Literal["positive", "neutral", "negative"]
JobStatus = Literal["pending", "processing", "completed", "error"]

TERMINAL_STATUSES = frozenset({"completed", "error"})

_FROZEN = {
    "alias_generator": to_camel,
    "populate_by_name": True,
    "frozen": True,
    "extra": "ignore",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Span(BaseModel):
    """Half-open character range into the original text."""

    model_config = _FROZEN

    start: int = Field(..., ge=0)
    end: int = Field(..., gt=0)

    @model_validator(mode="after")
    def check_order(self) -> "Span":
        if self.end <= self.start:
            raise ValueError(f"Span end {self.end} must be greater than start {self.start}")
        return self


class NarratorMention(BaseModel):
    """A single narrator name detected in a text."""

    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    span: Span
    category: NarratorCategory
    method: ExtractionMethod = Field(
        default="pattern",
        description="Which extraction pass produced the mention.",
    )
    trigger: Optional[str] = Field(
        default=None,
        description="Label of the transmission trigger that matched, if any.",
    )


class TextAnalysisResult(BaseModel):
    """Structured output of analyzing one hadith text."""

    model_config = _FROZEN

    original_text: str
    normalized_text: str
    narrator_mentions: List[NarratorMention] = Field(default_factory=list)
    overall_confidence: float = Field(..., ge=0.0, le=1.0)
    language: Language
    sentiment: Sentiment
    readability_score: float = Field(..., ge=0.0, le=100.0)
    key_terms: List[str] = Field(default_factory=list, max_length=10)
    word_count: int = 0
    processing_time_ms: float = 0.0
    extraction_degraded: bool = False
    warnings: List[str] = Field(default_factory=list)


class SimilarityResult(BaseModel):
    """Outcome of comparing a text with another text or a corpus entry."""

    model_config = _FROZEN

    similarity: float = Field(..., ge=-1.0, le=1.0)
    source_id: Optional[str] = None
    text: Optional[str] = None
    processing_time_ms: float = 0.0


class CorpusEntry(BaseModel):
    """A text in a corpus searched for similar hadith."""

    model_config = _FROZEN

    id: str
    text: str


class ErrorInfo(BaseModel):
    """Serializable description of an engine failure."""

    model_config = _FROZEN

    kind: str
    message: str
    retryable: bool = False
    index: Optional[int] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        if isinstance(exc, EngineError):
            return cls(
                kind=exc.kind,
                message=exc.message,
                retryable=exc.retryable,
                index=getattr(exc, "index", None),
            )
        return cls(kind="unexpected", message=str(exc) or type(exc).__name__)


class BatchJob(BaseModel):
    """Progress record for a bulk-processing run."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "ignore",
    }

    job_id: str
    status: JobStatus = "pending"
    total: int = Field(..., ge=0)
    processed: int = Field(default=0, ge=0)
    current_item: Optional[str] = None
    results: List[TextAnalysisResult] = Field(default_factory=list)
    error: Optional[ErrorInfo] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_progress(self) -> "BatchJob":
        if self.processed > self.total:
            raise ValueError(f"processed ({self.processed}) exceeds total ({self.total})")
        if len(self.results) != self.processed:
            raise ValueError("results must contain one entry per processed item")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class AnalysisSuccess(BaseModel):
    model_config = _FROZEN

    kind: Literal["success"] = "success"
    result: TextAnalysisResult


class AnalysisError(BaseModel):
    model_config = _FROZEN

    kind: Literal["failure"] = "failure"
    error: ErrorInfo


AnalysisOutcome = Annotated[Union[AnalysisSuccess, AnalysisError], Field(discriminator="kind")]


__all__ = [
    "NarratorCategory",
    "ExtractionMethod",
    "Language",
    "Sentiment",
    "JobStatus",
    "TERMINAL_STATUSES",
    "Span",
    "NarratorMention",
    "TextAnalysisResult",
    "SimilarityResult",
    "CorpusEntry",
    "ErrorInfo",
    "BatchJob",
    "AnalysisSuccess",
    "AnalysisError",
    "AnalysisOutcome",
]
