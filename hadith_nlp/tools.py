"""High-level tool functions returning JSON-ready dicts, shared by all surfaces."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Sequence, TypeVar, Union

from .apps.errors import InitializationFailure, TimeoutFailure, ValidationFailure
from .apps.models import CorpusEntry
from .engine import Engine, get_engine

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CorpusPayload = Union[Mapping[str, str], Sequence[Union[Mapping[str, Any], str]]]


async def _resolve(engine: Optional[Engine]) -> Engine:
    if engine is None:
        return await get_engine()
    return await engine.initialize()


def _corpus_entry(item: Any, index: int) -> CorpusEntry:
    try:
        if isinstance(item, Mapping):
            return CorpusEntry.model_validate(item)
        if isinstance(item, str):
            return CorpusEntry(id=str(index), text=item)
    except ValueError as exc:
        raise ValidationFailure(f"Invalid corpus entry: {exc}", operation="find_similar") from exc
    raise ValidationFailure(
        f"Corpus entry {index} must be a string or an object with 'id' and 'text'",
        operation="find_similar",
    )


def _corpus_from_payload(corpus: Optional[CorpusPayload]) -> Optional[List[CorpusEntry]]:
    """Validate a JSON corpus: a list of texts or entries, or an object of id -> text."""
    if corpus is None:
        return None
    if isinstance(corpus, Mapping):
        entries = []
        for key, text in corpus.items():
            if not isinstance(text, str):
                raise ValidationFailure(f"Corpus text for '{key}' must be a string", operation="find_similar")
            entries.append(CorpusEntry(id=str(key), text=text))
        return entries
    if not isinstance(corpus, (list, tuple)):
        raise ValidationFailure("'corpus' must be a list or an object of id -> text", operation="find_similar")
    return [_corpus_entry(item, index) for index, item in enumerate(corpus)]


async def analyze_text(text: str, *, engine: Optional[Engine] = None) -> Dict[str, Any]:
    """Analyze one hadith text."""
    engine = await _resolve(engine)
    result = await engine.analyze(text)
    return result.model_dump(mode="json", by_alias=True)


async def text_similarity(text_a: str, text_b: str, *, engine: Optional[Engine] = None) -> Dict[str, Any]:
    engine = await _resolve(engine)
    result = await engine.similarity(text_a, text_b)
    return result.model_dump(mode="json", by_alias=True)


async def find_similar(
    text: str,
    corpus: Optional[CorpusPayload] = None,
    *,
    top_k: int = 10,
    threshold: Optional[float] = None,
    engine: Optional[Engine] = None,
) -> Dict[str, Any]:
    """Rank a supplied corpus, or the persistent corpus index, against ``text``."""
    engine = await _resolve(engine)
    hits = await engine.search_similar(
        text,
        _corpus_from_payload(corpus),
        top_k=int(top_k),
        threshold=threshold,
    )
    return {
        "query": text,
        "source": "index" if corpus is None else "corpus",
        "total": len(hits),
        "hits": [hit.model_dump(mode="json", by_alias=True) for hit in hits],
    }


async def submit_batch(texts: Sequence[str], *, engine: Optional[Engine] = None) -> Dict[str, Any]:
    engine = await _resolve(engine)
    job_id = await engine.submit_batch(texts)
    job = await engine.poll_batch(job_id)
    return {"jobId": job_id, "status": job.status, "total": job.total}


async def batch_status(job_id: str, *, engine: Optional[Engine] = None) -> Dict[str, Any]:
    engine = await _resolve(engine)
    job = await engine.poll_batch(job_id)
    return job.model_dump(mode="json", by_alias=True)


async def engine_status(*, engine: Optional[Engine] = None) -> Dict[str, Any]:
    """Report engine readiness; a failed initialization is reported, not raised."""
    try:
        engine = await _resolve(engine)
    except InitializationFailure as exc:
        return {"initialized": False, "last_error": exc.to_dict()}
    return engine.status()


class EngineRunner:
    """Runs engine coroutines on a private event loop for synchronous hosts.

    The loop lives in a daemon thread for the runner's lifetime, so batch jobs
    keep progressing between calls.
    """

    def __init__(self, *, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="hadith-nlp-engine",
            daemon=True,
        )
        self._start_lock = threading.Lock()

    def _ensure_started(self) -> None:
        with self._start_lock:
            if not self._thread.is_alive():
                self._thread.start()

    def run(self, coro: Awaitable[T], *, timeout: Optional[float] = None) -> T:
        """Block until ``coro`` finishes; raise :class:`TimeoutFailure` past the ceiling."""
        self._ensure_started()
        limit = timeout if timeout is not None else self.timeout
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(limit)
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            LOGGER.warning("Engine call exceeded %.1fs and was cancelled", limit)
            raise TimeoutFailure(f"Operation exceeded {limit:.1f}s", operation="run") from exc

    def close(self) -> None:
        if self._thread.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
        self._loop.close()


__all__ = [
    "analyze_text",
    "text_similarity",
    "find_similar",
    "submit_batch",
    "batch_status",
    "engine_status",
    "EngineRunner",
]
