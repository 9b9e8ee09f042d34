"""Narrator extraction combining transmission-trigger patterns with NER."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .backends import NerBackend
from .lexicons import (
    CHAIN_TRIGGERS,
    COMPANION_TOKENS,
    LINEAGE_TRIGGERS,
    NAME_STOP_WORDS,
    SCHOLAR_TOKENS,
)
from .models import ExtractionMethod, NarratorCategory, NarratorMention, Span
from .normalization import (
    DIACRITICS,
    TATWEEL,
    fold_key,
    lexicon_fold,
    normalize,
    normalize_with_offsets,
    original_span,
)

LOGGER = logging.getLogger(__name__)

PERSON_LABELS = frozenset({"PER", "PERSON"})
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50
MAX_NAME_WORDS = 5

_MARKS = f"[{DIACRITICS}{TATWEEL}]"
_LETTER = "[\u0621-\u063a\u0641-\u064a\u0671-\u06d3]"
_WORD = f"{_LETTER}(?:{_LETTER}|{_MARKS})*"
_NOT_AFTER_WORD = f"(?<!{_LETTER})(?<!{_MARKS})"
_WORD_END = f"(?!{_LETTER}|{_MARKS})"

_VARIANT_CLASSES = {
    "ا": "[اأإآ]",
    "ه": "[هة]",
    "ي": "[يىی]",
}


def tolerant_pattern(word: str) -> str:
    """Regex matching ``word`` with any diacritics and letter variants."""
    parts = []
    for char in normalize(word):
        parts.append(_VARIANT_CLASSES.get(char, re.escape(char)))
        parts.append(f"{_MARKS}*")
    return "".join(parts)


def _alternation(words: Iterable[str]) -> str:
    # Longest first so that e.g. "قالت" is tried before "قال"
    ordered = sorted({normalize(w) for w in words}, key=len, reverse=True)
    return "(?:" + "|".join(tolerant_pattern(w) for w in ordered) + ")"


_ALL_CHAIN_WORDS = [w for _, words in CHAIN_TRIGGERS for w in words]
_STOP = _alternation(list(NAME_STOP_WORDS) + _ALL_CHAIN_WORDS) + _WORD_END
_NAME_WORD = f"(?!{_STOP}){_WORD}"
_NAME = f"{_NAME_WORD}(?:\\s+{_NAME_WORD}){{0,{MAX_NAME_WORDS - 1}}}"
_COMPOUND = f"(?:{tolerant_pattern('عبد')}\\s+)?{_WORD}"


@dataclass(frozen=True)
class TriggerPattern:
    label: str
    regex: re.Pattern


def _build_patterns() -> Tuple[TriggerPattern, ...]:
    patterns: List[TriggerPattern] = []
    for label, words in CHAIN_TRIGGERS:
        source = f"{_NOT_AFTER_WORD}{_alternation(words)}{_WORD_END}\\s+({_NAME})"
        patterns.append(TriggerPattern(label, re.compile(source)))
    for label, words in LINEAGE_TRIGGERS:
        source = f"{_NOT_AFTER_WORD}({_alternation(words)}\\s+{_COMPOUND}){_WORD_END}"
        patterns.append(TriggerPattern(label, re.compile(source)))
    return tuple(patterns)


TRIGGER_PATTERNS = _build_patterns()


@dataclass
class ExtractionReport:
    mentions: List[NarratorMention]
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def _contains_sequence(tokens: List[str], needle: Tuple[str, ...]) -> bool:
    width = len(needle)
    return any(tuple(tokens[i:i + width]) == needle for i in range(len(tokens) - width + 1))


def classify_name(name: str, method: ExtractionMethod) -> NarratorCategory:
    tokens = lexicon_fold(name).split(" ")
    if any(_contains_sequence(tokens, seq) for seq in COMPANION_TOKENS):
        return "companion"
    if any(_contains_sequence(tokens, seq) for seq in SCHOLAR_TOKENS):
        return "scholar"
    return "narrator" if method == "pattern" else "uncertain"


def merge_mentions(mentions: Iterable[NarratorMention], limit: Optional[int] = None) -> List[NarratorMention]:
    """Deduplicate by folded name keeping the most confident, sorted descending."""
    best: Dict[str, NarratorMention] = {}
    for mention in mentions:
        key = fold_key(mention.name)
        current = best.get(key)
        if current is None or mention.confidence > current.confidence:
            best[key] = mention
    merged = sorted(best.values(), key=lambda m: (-m.confidence, m.span.start))
    return merged[:limit] if limit else merged


class NarratorExtractor:
    """Detects narrator names in a hadith's chain of transmission."""

    def __init__(
        self,
        ner: Optional[NerBackend] = None,
        *,
        pattern_confidence: float = 0.7,
        min_score: float = 0.5,
        max_mentions: int = 20,
    ) -> None:
        self.ner = ner
        self.pattern_confidence = pattern_confidence
        self.min_score = min_score
        self.max_mentions = max_mentions

    @property
    def ready(self) -> bool:
        return self.ner is not None

    def pattern_pass(self, text: str) -> List[NarratorMention]:
        mentions: List[NarratorMention] = []
        for trigger in TRIGGER_PATTERNS:
            for match in trigger.regex.finditer(text):
                start, end = match.span(1)
                name = match.group(1)
                if not MIN_NAME_LENGTH < len(name) < MAX_NAME_LENGTH:
                    continue
                mentions.append(
                    NarratorMention(
                        name=name,
                        confidence=self.pattern_confidence,
                        span=Span(start=start, end=end),
                        category=classify_name(name, "pattern"),
                        method="pattern",
                        trigger=trigger.label,
                    )
                )
        return mentions

    async def statistical_pass(self, text: str) -> List[NarratorMention]:
        if self.ner is None:
            return []
        normalized, offsets = normalize_with_offsets(text)
        if not normalized:
            return []
        entities = await asyncio.to_thread(self.ner, normalized)

        mentions: List[NarratorMention] = []
        for entity in entities or []:
            label = str(entity.get("entity_group") or entity.get("entity") or "")
            label = label.split("-", 1)[-1].upper()
            score = float(entity.get("score") or 0.0)
            if label not in PERSON_LABELS or score <= self.min_score:
                continue
            start, end = entity.get("start"), entity.get("end")
            if start is None or end is None:
                continue
            span = original_span(offsets, int(start), int(end))
            if span is None:
                continue
            name = text[span[0]:span[1]]
            if not name.strip():
                continue
            mentions.append(
                NarratorMention(
                    name=name,
                    confidence=min(1.0, score),
                    span=Span(start=span[0], end=span[1]),
                    category=classify_name(name, "statistical"),
                    method="statistical",
                )
            )
        return mentions

    async def extract(self, text: str) -> ExtractionReport:
        """Run both passes and merge them; model failures degrade to no mentions."""
        start = time.perf_counter()
        if not text or not text.strip():
            return ExtractionReport(mentions=[])

        warnings: List[str] = []
        if self.ner is None:
            warnings.append("Statistical extractor unavailable; pattern matches only")
        try:
            found = self.pattern_pass(text)
            found.extend(await self.statistical_pass(text))
        except Exception as exc:
            duration = time.perf_counter() - start
            message = f"Narrator extraction failed: {exc}"
            return ExtractionReport(
                mentions=[],
                degraded=True,
                warnings=[message],
                duration_seconds=duration,
            )

        mentions = merge_mentions(found, limit=self.max_mentions)
        LOGGER.debug("Extracted %d narrator mention(s) from %d candidate(s)", len(mentions), len(found))
        return ExtractionReport(
            mentions=mentions,
            degraded=self.ner is None,
            warnings=warnings,
            duration_seconds=time.perf_counter() - start,
        )

    async def extract_narrators(self, text: str) -> List[NarratorMention]:
        report = await self.extract(text)
        return report.mentions


__all__ = [
    "TRIGGER_PATTERNS",
    "TriggerPattern",
    "ExtractionReport",
    "NarratorExtractor",
    "classify_name",
    "merge_mentions",
    "tolerant_pattern",
]
