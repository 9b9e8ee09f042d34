"""Fixed word lists used by the narrator extractor and the text analyzer.

Entries are written in their usual orthography; callers compare them against
normalized text, so every list is exposed in normalized form as well.
"""

from __future__ import annotations

from typing import List, Tuple

from .normalization import lexicon_fold, normalize

# (label, trigger words) in matching order. Chain triggers capture the name that
# follows; lineage triggers keep the kinship word as part of the name.
CHAIN_TRIGGERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("narrated_to_us", ("حدثنا", "حدثني")),
    ("informed_us", ("أخبرنا", "أخبرني", "أنبأنا")),
    ("heard", ("سمعت", "سمع")),
    ("said", ("قال", "قالت")),
    ("from", ("عن",)),
)

LINEAGE_TRIGGERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("son_of", ("ابن", "بن")),
    ("daughter_of", ("بنت",)),
    ("father_of", ("أبو", "أبي", "أبا")),
    ("mother_of", ("أم",)),
)

# Words that end a captured name span.
NAME_STOP_WORDS: Tuple[str, ...] = (
    "أن",
    "أنه",
    "أنها",
    "يقول",
    "رضي",
    "رحمه",
    "صلى",
    "عليه",
    "وسلم",
    "قال",
    "قالت",
)

COMPANION_NAMES: Tuple[str, ...] = (
    "أبو بكر",
    "أبي بكر",
    "عمر",
    "عثمان",
    "علي",
    "أبو هريرة",
    "أبي هريرة",
    "أنس",
    "عائشة",
    "عبد الله بن مسعود",
    "عبد الله بن عباس",
    "ابن عباس",
    "ابن عمر",
)

SCHOLAR_MARKERS: Tuple[str, ...] = (
    "الذهبي",
    "ابن حجر",
    "النووي",
    "العجلي",
    "الباقلاني",
    "الإمام",
    "الحافظ",
)

DOMAIN_TERMS: Tuple[str, ...] = (
    "حديث",
    "سنة",
    "رسول",
    "الله",
    "صلى",
    "عليه",
    "وسلم",
    "رضي",
    "عنه",
    "عنها",
    "قال",
    "قالت",
    "حدثنا",
    "أخبرنا",
)


def _token_sequences(entries: Tuple[str, ...]) -> List[Tuple[str, ...]]:
    return [tuple(lexicon_fold(entry).split(" ")) for entry in entries]


COMPANION_TOKENS = _token_sequences(COMPANION_NAMES)
SCHOLAR_TOKENS = _token_sequences(SCHOLAR_MARKERS)
DOMAIN_TERMS_NORMALIZED = frozenset(normalize(term) for term in DOMAIN_TERMS)


__all__ = [
    "CHAIN_TRIGGERS",
    "LINEAGE_TRIGGERS",
    "NAME_STOP_WORDS",
    "COMPANION_NAMES",
    "SCHOLAR_MARKERS",
    "DOMAIN_TERMS",
    "COMPANION_TOKENS",
    "SCHOLAR_TOKENS",
    "DOMAIN_TERMS_NORMALIZED",
]
