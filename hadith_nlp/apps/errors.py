"""Error taxonomy raised by the hadith text-analysis engine."""

from __future__ import annotations

from typing import Dict, Optional


class EngineError(RuntimeError):
    """Base class for engine failures surfaced to callers."""

    kind = "engine_error"
    retryable = False
    user_message = "The analysis engine failed."

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "user_message": self.user_message,
        }
        if self.operation:
            payload["operation"] = self.operation
        return payload


class InitializationFailure(EngineError):
    """Raised when a required model could not be loaded."""

    kind = "initialization"
    retryable = True
    user_message = "AI engine not ready."


class AnalysisFailure(EngineError):
    """Raised when a single-text analysis cannot complete."""

    kind = "analysis"
    retryable = True
    user_message = "Analysis failed; please resubmit."


class EmbeddingFailure(EngineError):
    """Raised when an embedding cannot be generated."""

    kind = "embedding"
    retryable = True
    user_message = "Similarity could not be computed; please resubmit."


class ValidationFailure(EngineError):
    """Raised when caller-supplied input is empty or invalid."""

    kind = "validation"
    user_message = "Please correct the input and try again."


class TimeoutFailure(EngineError):
    """Raised when a caller-imposed ceiling is exceeded."""

    kind = "timeout"
    retryable = True
    user_message = "The request took too long; try a shorter text."


class NotFoundFailure(EngineError):
    """Raised when a batch job id is unknown."""

    kind = "not_found"
    user_message = "The requested job does not exist."


class BatchItemFailure(EngineError):
    """Raised when one item of a batch fails and terminates the job."""

    kind = "batch_item"
    user_message = "A text in the batch could not be analyzed."

    def __init__(self, message: str, *, index: int, operation: Optional[str] = None) -> None:
        super().__init__(message, operation=operation)
        self.index = index

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["index"] = self.index
        return payload


__all__ = [
    "EngineError",
    "InitializationFailure",
    "AnalysisFailure",
    "EmbeddingFailure",
    "ValidationFailure",
    "TimeoutFailure",
    "NotFoundFailure",
    "BatchItemFailure",
]
