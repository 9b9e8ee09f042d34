"""Normalization helpers for Arabic hadith text and narrator names."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

# Short vowels, tanween, shadda, sukun, superscript alef and Quranic marks
DIACRITICS = "\u064b-\u065f\u0670\u06d6-\u06ed"
TATWEEL = "\u0640"
DIACRITICS_PATTERN = re.compile(f"[{DIACRITICS}{TATWEEL}]")

_FOLD_TABLE = str.maketrans({
    "آ": "ا",  # alef with madda above
    "أ": "ا",  # alef with hamza above
    "إ": "ا",  # alef with hamza below
    "ة": "ه",  # teh marbuta -> heh
    "ى": "ي",  # alef maksura -> yeh
    "ی": "ي",  # farsi yeh -> yeh
})

# Alef maksura kept: "على" must not match "علي"
_LEXICON_FOLD_TABLE = {key: value for key, value in _FOLD_TABLE.items() if key != ord("ى")}

HONORIFICS_PATTERN = re.compile(
    r"\((?:may|may allah be pleased|رضي الله عن(?:ه|ها|هم))[^)]*\)"
    r"|رضي الله عن(?:ه|ها|هما|هم)"
    r"|رحمه الله",
    re.IGNORECASE,
)
VERB_PATTERN = re.compile(r"\b(reported|narrated|said|stated)\b:?", re.IGNORECASE)
WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """Return the canonical, diacritic-free form of ``text``."""
    if not text:
        return ""
    cleaned = DIACRITICS_PATTERN.sub("", text)
    cleaned = cleaned.translate(_FOLD_TABLE)
    return WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def normalize_with_offsets(text: Optional[str]) -> Tuple[str, List[int]]:
    """Normalize ``text`` and map every normalized index back to the original.

    ``offsets[i]`` is the original index of normalized character ``i``. Produces
    exactly the same string as :func:`normalize`.
    """
    if not text:
        return "", []

    chars: List[str] = []
    offsets: List[int] = []
    pending_space: Optional[int] = None
    for index, char in enumerate(text):
        if DIACRITICS_PATTERN.match(char):
            continue
        if char.isspace():
            if chars and pending_space is None:
                pending_space = index
            continue
        if pending_space is not None:
            chars.append(" ")
            offsets.append(pending_space)
            pending_space = None
        chars.append(char.translate(_FOLD_TABLE))
        offsets.append(index)
    return "".join(chars), offsets


def original_span(offsets: List[int], start: int, end: int) -> Optional[Tuple[int, int]]:
    """Translate a normalized ``[start, end)`` span into original offsets."""
    if not offsets or start < 0 or end > len(offsets) or start >= end:
        return None
    return offsets[start], offsets[end - 1] + 1


def lexicon_fold(text: Optional[str]) -> str:
    """Like :func:`normalize` but alef maksura is left unfolded."""
    if not text:
        return ""
    cleaned = DIACRITICS_PATTERN.sub("", text).translate(_LEXICON_FOLD_TABLE)
    return WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def fold_key(name: str) -> str:
    """Key used to compare narrator names across extraction passes."""
    return normalize(name).casefold()


def clean_narrator_name(raw: Optional[str]) -> Optional[str]:
    """Return a canonical narrator name stripped of honorifics and verbs."""
    if not raw:
        return None
    cleaned = HONORIFICS_PATTERN.sub("", raw)
    cleaned = VERB_PATTERN.sub("", cleaned)
    # Strip punctuation artifacts
    cleaned = cleaned.replace(":", "").replace("،", "").replace("؛", "")
    cleaned = WHITESPACE_PATTERN.sub(" ", cleaned)
    return cleaned.strip(" -.\u200f\u200e\ufeff") or None


def preview(text: Optional[str], limit: int = 80) -> str:
    """Single-line truncated form of ``text`` for log messages."""
    if not text:
        return ""
    flat = WHITESPACE_PATTERN.sub(" ", text).strip()
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


__all__ = [
    "normalize",
    "normalize_with_offsets",
    "original_span",
    "fold_key",
    "lexicon_fold",
    "clean_narrator_name",
    "preview",
]
