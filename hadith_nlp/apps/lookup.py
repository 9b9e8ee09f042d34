"""Hand-off of extracted narrator names to a biographical directory."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Protocol

from .models import NarratorMention
from .normalization import clean_narrator_name

LOGGER = logging.getLogger(__name__)


class NarratorDirectory(Protocol):
    """Storage collaborator resolving a narrator name to a stored record."""

    def find(self, name: str) -> Optional[Any]:
        ...


def lookup_narrators(
    mentions: Iterable[NarratorMention],
    directory: NarratorDirectory,
) -> Dict[str, Optional[Any]]:
    """Map each cleaned mention name to the directory's record, or ``None``.

    Names are looked up once each. Directory errors are logged and reported as
    ``None`` for that name only.
    """
    resolved: Dict[str, Optional[Any]] = {}
    for mention in mentions:
        name = clean_narrator_name(mention.name)
        if not name or name in resolved:
            continue
        try:
            resolved[name] = directory.find(name)
        except Exception as exc:
            LOGGER.warning("Narrator lookup failed for %r: %s", name, exc)
            resolved[name] = None
    return resolved


__all__ = ["NarratorDirectory", "lookup_narrators"]
