"""Engine composing extraction, analysis, similarity and batch processing."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .apps.analysis import TextAnalyzer
from .apps.backends import (
    Encoder,
    NerBackend,
    SentimentBackend,
    load_encoder,
    load_ner_pipeline,
    load_sentiment_pipeline,
)
from .apps.batch import BatchProcessor, wait_for_job
from .apps.cache import ResultCache
from .apps.corpus import CorpusIndex, CorpusUpdateResult
from .apps.embeddings import CorpusInput, EmbeddingEngine
from .apps.errors import EngineError, InitializationFailure
from .apps.extraction import NarratorExtractor
from .apps.models import (
    AnalysisError,
    AnalysisOutcome,
    AnalysisSuccess,
    BatchJob,
    ErrorInfo,
    NarratorMention,
    SimilarityResult,
    TextAnalysisResult,
)
from .config import EngineSettings

LOGGER = logging.getLogger(__name__)


class Engine:
    """Text-analysis engine holding shared, read-only model backends.

    Backends passed to the constructor are used as-is; any left as ``None`` are
    loaded by :meth:`initialize`. Every operation except :meth:`status` raises
    :class:`InitializationFailure` until initialization succeeds.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        *,
        ner: Optional[NerBackend] = None,
        sentiment: Optional[SentimentBackend] = None,
        encoder: Optional[Encoder] = None,
    ) -> None:
        self.settings = settings or EngineSettings.from_env()
        self.extractor = NarratorExtractor(
            ner,
            pattern_confidence=self.settings.pattern_confidence,
            min_score=self.settings.ner_min_score,
            max_mentions=self.settings.max_mentions,
        )
        self.analyzer = TextAnalyzer(
            self.extractor,
            sentiment,
            sentiment_min_score=self.settings.sentiment_min_score,
        )
        self.embeddings = EmbeddingEngine(
            encoder,
            model_name=self.settings.embedding_model,
            cache_size=self.settings.embedding_cache_size,
        )
        self.batches = BatchProcessor(
            self.analyze,
            max_items=self.settings.max_batch_items,
            retention_seconds=self.settings.batch_retention_seconds,
        )
        self.results = ResultCache(
            self.settings.result_cache_size,
            self.settings.result_cache_ttl_seconds,
        )
        self._corpus_index: Optional[CorpusIndex] = None
        self._init_task: Optional["asyncio.Task[None]"] = None
        self.initialized = False
        self.last_error: Optional[Dict[str, object]] = None
        self.analyses = 0
        self.failures = 0

    async def initialize(self) -> "Engine":
        """Load missing backends once; concurrent callers share one load.

        The load runs in its own task, so a caller that is cancelled or times
        out leaves it running for the next caller instead of starting another.
        """
        if self.initialized:
            return self
        task = self._init_task
        if task is None or task.get_loop() is not asyncio.get_running_loop():
            task = asyncio.create_task(self._load_backends(), name="engine-initialize")
            task.add_done_callback(self._init_finished)
            self._init_task = task
        await asyncio.shield(task)
        return self

    def _init_finished(self, task: "asyncio.Task[None]") -> None:
        if task.cancelled() or task.exception() is not None:
            if self._init_task is task:
                self._init_task = None

    async def _load_backends(self) -> None:
        settings = self.settings
        start = time.perf_counter()
        try:
            if self.extractor.ner is None:
                self.extractor.ner = await asyncio.to_thread(
                    load_ner_pipeline,
                    settings.ner_model,
                    device=settings.device,
                    attempts=settings.load_attempts,
                )
            if self.analyzer.sentiment is None:
                self.analyzer.sentiment = await asyncio.to_thread(
                    load_sentiment_pipeline,
                    settings.sentiment_model,
                    device=settings.device,
                    attempts=settings.load_attempts,
                )
            if self.embeddings.encoder is None:
                self.embeddings.encoder = await asyncio.to_thread(
                    load_encoder,
                    settings.embedding_model,
                    device=settings.device,
                    attempts=settings.load_attempts,
                )
        except InitializationFailure as exc:
            self.last_error = exc.to_dict()
            raise
        except Exception as exc:
            failure = InitializationFailure(f"Engine initialization failed: {exc}", operation="initialize")
            self.last_error = failure.to_dict()
            raise failure from exc
        self.initialized = True
        self.last_error = None
        LOGGER.info("Engine initialized in %.2fs", time.perf_counter() - start)

    def _require_ready(self, operation: str) -> None:
        if not self.initialized:
            raise InitializationFailure("AI engine not ready; call initialize() first", operation=operation)

    async def analyze(self, text: str) -> TextAnalysisResult:
        """Analyze ``text``; identical texts are served from the result cache."""
        self._require_ready("analyze")
        key = ("analyze", text)
        result = self.results.get(key)
        if result is None:
            try:
                result = await self.analyzer.analyze(text)
            except EngineError:
                self.failures += 1
                raise
            if not result.extraction_degraded:
                self.results.put(key, result)
        self.analyses += 1
        return result

    async def try_analyze(self, text: str) -> AnalysisOutcome:
        """Like :meth:`analyze` but returns failures as values."""
        try:
            return AnalysisSuccess(result=await self.analyze(text))
        except EngineError as exc:
            return AnalysisError(error=ErrorInfo.from_exception(exc))

    async def extract_narrators(self, text: str) -> List[NarratorMention]:
        self._require_ready("extract_narrators")
        key = ("extract_narrators", text)
        cached = self.results.get(key)
        if cached is not None:
            return list(cached)
        report = await self.extractor.extract(text)
        if report.degraded:
            LOGGER.warning("Narrator extraction degraded: %s", "; ".join(report.warnings))
        else:
            self.results.put(key, tuple(report.mentions))
        return report.mentions

    async def embed(self, text: str) -> np.ndarray:
        self._require_ready("embed")
        return await self.embeddings.embed(text)

    async def similarity(self, text_a: str, text_b: str, *, source_id: Optional[str] = None) -> SimilarityResult:
        self._require_ready("similarity")
        return await self.embeddings.similarity(text_a, text_b, source_id=source_id)

    async def search_similar(
        self,
        text: str,
        corpus: Optional[CorpusInput] = None,
        *,
        top_k: int = 10,
        threshold: Optional[float] = None,
    ) -> List[SimilarityResult]:
        """Rank ``corpus`` (or the persistent index when omitted) against ``text``."""
        self._require_ready("search_similar")
        if corpus is None:
            return await self.corpus_index().query(text, n_results=top_k, threshold=threshold)
        return await self.embeddings.search(text, corpus, top_k=top_k, threshold=threshold)

    def corpus_index(self) -> CorpusIndex:
        if self._corpus_index is None:
            self._corpus_index = CorpusIndex(
                self.embeddings,
                persist_directory=self.settings.corpus_directory,
                collection_name=self.settings.corpus_collection,
            )
        return self._corpus_index

    async def index_corpus(self, corpus: CorpusInput, *, force: bool = False) -> CorpusUpdateResult:
        self._require_ready("index_corpus")
        return await self.corpus_index().upsert(corpus, force=force)

    async def submit_batch(self, texts: Sequence[str]) -> str:
        self._require_ready("submit_batch")
        return await self.batches.submit(texts)

    async def poll_batch(self, job_id: str) -> BatchJob:
        return self.batches.poll(job_id)

    async def wait_for_job(
        self,
        job_id: str,
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> BatchJob:
        return await wait_for_job(
            self.batches.poll,
            job_id,
            poll_interval=poll_interval or self.settings.poll_interval_seconds,
            timeout=timeout,
        )

    def status(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "models": {
                "ner": self.settings.ner_model,
                "sentiment": self.settings.sentiment_model,
                "embedding": self.settings.embedding_model,
            },
            "device": self.settings.device,
            "last_error": self.last_error,
            "counters": {
                "analyses": self.analyses,
                "failures": self.failures,
                "embeddings": self.embeddings.embedded,
                "cache_hits": self.embeddings.cache_hits,
                "result_cache_hits": self.results.hits,
                "result_cache_misses": self.results.misses,
            },
            "batch_jobs": len(self.batches),
        }


class EngineFactory:
    """Memoizes one initialized :class:`Engine` per factory."""

    def __init__(self, settings: Optional[EngineSettings] = None, **backends: Any) -> None:
        self.settings = settings
        self.backends = backends
        self._engine: Optional[Engine] = None
        self._lock = asyncio.Lock()

    async def get_engine(self) -> Engine:
        engine = self._engine
        if engine is not None and engine.initialized:
            return engine
        async with self._lock:
            if self._engine is None:
                self._engine = Engine(self.settings, **self.backends)
            engine = self._engine
        return await engine.initialize()

    def reset(self) -> None:
        self._engine = None


_default_factory = EngineFactory()


async def get_engine() -> Engine:
    """Return the process-wide engine, initializing it on first use."""
    return await _default_factory.get_engine()


def reset_engine() -> None:
    _default_factory.reset()


__all__ = ["Engine", "EngineFactory", "get_engine", "reset_engine"]
