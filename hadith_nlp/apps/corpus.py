"""Persistent ChromaDB index of corpus embeddings for similar-hadith search."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .embeddings import SIMILARITY_DECIMALS, CorpusInput, EmbeddingEngine, coerce_corpus
from .errors import InitializationFailure
from .models import SimilarityResult
from .normalization import normalize

try:  # pragma: no cover - optional dependency check
    import chromadb
except Exception:  # pragma: no cover - handle missing dependency gracefully
    chromadb = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)


@dataclass
class CorpusUpdateResult:
    processed: int
    inserted: int
    skipped: int
    duration_seconds: float


def text_checksum(text: str) -> str:
    return hashlib.sha256(normalize(text).encode("utf-8")).hexdigest()


class CorpusIndex:
    """Corpus embeddings stored in a cosine-space ChromaDB collection.

    Vectors come from the shared :class:`EmbeddingEngine`, so stored entries and
    queries are embedded by the same model and normalization. A checksum file
    beside the collection lets unchanged entries skip re-embedding.
    """

    def __init__(
        self,
        embeddings: EmbeddingEngine,
        persist_directory: Path | str = Path("data/indexes/corpus"),
        collection_name: str = "hadith_corpus",
        checksum_filename: str = "checksums.json",
        metadata_filename: str = "metadata.json",
    ) -> None:
        self.embeddings = embeddings
        self.persist_directory = Path(persist_directory)
        self.collection_name = collection_name
        self.checksum_path = self.persist_directory / checksum_filename
        self.metadata_path = self.persist_directory / metadata_filename
        self._checksums: Dict[str, str] = {}
        self._client = None
        self._collection = None
        self._dependency_error: Optional[str] = None

        self.persist_directory.mkdir(parents=True, exist_ok=True)
        self._load_checksums()
        self._initialise_client()

    # public API -------------------------------------------------
    def dependencies_ok(self) -> bool:
        return self._dependency_error is None

    def status(self) -> Dict[str, object]:
        count: Optional[int] = None
        last_updated: Optional[str] = None
        if self._collection is not None:
            try:
                count = self._collection.count()
            except Exception as exc:
                LOGGER.warning("Could not count collection %s: %s", self.collection_name, exc)
        if self.metadata_path.exists():
            try:
                payload = json.loads(self.metadata_path.read_text(encoding="utf-8"))
                last_updated = payload.get("last_updated")
            except (OSError, ValueError) as exc:
                LOGGER.warning("Unreadable index metadata %s: %s", self.metadata_path, exc)
        return {
            "collection": self.collection_name,
            "persist_directory": str(self.persist_directory),
            "document_count": count,
            "cached_documents": len(self._checksums),
            "model": self.embeddings.model_name,
            "dependencies_ok": self.dependencies_ok(),
            "dependency_error": self._dependency_error,
            "last_updated": last_updated,
        }

    async def upsert(self, corpus: CorpusInput, *, force: bool = False) -> CorpusUpdateResult:
        collection = self._require_collection()
        start = time.perf_counter()

        ids: List[str] = []
        texts: List[str] = []
        metadatas: List[Dict[str, object]] = []
        pending: Dict[str, str] = {}
        skipped = 0
        for entry in coerce_corpus(corpus):
            if not normalize(entry.text):
                skipped += 1
                continue
            checksum = text_checksum(entry.text)
            if not force and self._checksums.get(entry.id) == checksum:
                skipped += 1
                continue
            ids.append(entry.id)
            texts.append(entry.text)
            metadatas.append({"checksum": checksum})
            pending[entry.id] = checksum

        if ids:
            vectors = await self.embeddings.embed_many(texts)
            await asyncio.to_thread(
                collection.upsert,
                ids=ids,
                documents=texts,
                metadatas=metadatas,
                embeddings=vectors.tolist(),
            )
            self._checksums.update(pending)
            self._save_checksums()
            self._write_metadata()

        duration = time.perf_counter() - start
        LOGGER.info(
            "Indexed %d corpus entr(ies), skipped %d, in %.2fs", len(ids), skipped, duration
        )
        return CorpusUpdateResult(
            processed=len(ids) + skipped,
            inserted=len(ids),
            skipped=skipped,
            duration_seconds=duration,
        )

    async def query(
        self,
        text: str,
        *,
        n_results: int = 10,
        threshold: Optional[float] = None,
    ) -> List[SimilarityResult]:
        """Return stored entries most similar to ``text``, descending."""
        collection = self._require_collection()
        start = time.perf_counter()
        vector = await self.embeddings.embed(text)
        if await asyncio.to_thread(collection.count) == 0:
            return []
        res = await asyncio.to_thread(
            collection.query,
            query_embeddings=[vector.tolist()],
            n_results=max(1, int(n_results)),
            include=["distances", "documents"],
        )
        ids = (res.get("ids") or [[]])[0]
        distances = (res.get("distances") or [[]])[0]
        documents = (res.get("documents") or [[]])[0]

        elapsed_ms = round((time.perf_counter() - start) * 1000.0, 3)
        results: List[SimilarityResult] = []
        for i, doc_id in enumerate(ids):
            # cosine space: distance = 1 - cosine similarity
            similarity = 1.0 - float(distances[i])
            similarity = round(max(-1.0, min(1.0, similarity)), SIMILARITY_DECIMALS)
            if threshold is not None and similarity < threshold:
                continue
            results.append(
                SimilarityResult(
                    similarity=similarity,
                    source_id=str(doc_id),
                    text=documents[i] if i < len(documents) else None,
                    processing_time_ms=elapsed_ms,
                )
            )
        results.sort(key=lambda r: (-r.similarity, r.source_id or ""))
        return results

    # internal helpers ------------------------------------------
    def _require_collection(self):
        if self._collection is None:
            raise InitializationFailure(
                self._dependency_error or "Corpus index is not available",
                operation="corpus",
            )
        return self._collection

    def _initialise_client(self) -> None:
        if chromadb is None:
            self._dependency_error = "chromadb is not installed"
            return
        try:
            self._client = chromadb.PersistentClient(path=str(self.persist_directory))
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as exc:
            LOGGER.error("Failed to open corpus index at %s: %s", self.persist_directory, exc)
            self._dependency_error = f"Failed to initialise ChromaDB client: {exc}"

    def _load_checksums(self) -> None:
        if not self.checksum_path.exists():
            return
        try:
            self._checksums = json.loads(self.checksum_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable checksum cache %s: %s", self.checksum_path, exc)
            self._checksums = {}

    def _save_checksums(self) -> None:
        self.checksum_path.write_text(
            json.dumps(self._checksums, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def _write_metadata(self) -> None:
        payload = {
            "model": self.embeddings.model_name,
            "last_updated": datetime.now(timezone.utc).isoformat(),
        }
        self.metadata_path.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )


__all__ = ["CorpusIndex", "CorpusUpdateResult", "text_checksum"]
