"""JSON and CSV renderings of analysis results."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable, List, Union

from .models import BatchJob, TextAnalysisResult

CSV_PREVIEW_CHARS = 100

CSV_HEADERS = (
    "Text",
    "Word Count",
    "Language",
    "Narrator Count",
    "Narrators",
    "Confidence",
    "Sentiment",
    "Readability",
    "Key Terms",
    "Processing Time (ms)",
)

Exportable = Union[TextAnalysisResult, BatchJob, Iterable[TextAnalysisResult]]


def _results(payload: Exportable) -> List[TextAnalysisResult]:
    if isinstance(payload, TextAnalysisResult):
        return [payload]
    if isinstance(payload, BatchJob):
        return list(payload.results)
    return list(payload)


def to_json(payload: Exportable, *, indent: int = 2) -> str:
    """Serialize results with camelCase field names; batch jobs keep their envelope."""
    data: Any
    if isinstance(payload, (TextAnalysisResult, BatchJob)):
        data = payload.model_dump(mode="json", by_alias=True)
    else:
        data = [item.model_dump(mode="json", by_alias=True) for item in payload]
    return json.dumps(data, ensure_ascii=False, indent=indent)


def _text_preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) <= CSV_PREVIEW_CHARS:
        return flat
    return flat[:CSV_PREVIEW_CHARS] + "..."


def to_csv(payload: Exportable) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for result in _results(payload):
        writer.writerow(
            [
                _text_preview(result.original_text),
                result.word_count,
                result.language,
                len(result.narrator_mentions),
                "; ".join(m.name for m in result.narrator_mentions),
                f"{result.overall_confidence:.3f}",
                result.sentiment,
                f"{result.readability_score:.2f}",
                "; ".join(result.key_terms),
                f"{result.processing_time_ms:.1f}",
            ]
        )
    return buffer.getvalue()


__all__ = ["CSV_HEADERS", "to_json", "to_csv"]
