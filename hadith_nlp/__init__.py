"""Narrator extraction, text analysis and similarity for Arabic hadith texts."""

from .apps.models import BatchJob, NarratorMention, SimilarityResult, TextAnalysisResult
from .apps.normalization import normalize
from .config import EngineSettings
from .engine import Engine, EngineFactory, get_engine

__all__ = [
    "BatchJob",
    "NarratorMention",
    "SimilarityResult",
    "TextAnalysisResult",
    "normalize",
    "EngineSettings",
    "Engine",
    "EngineFactory",
    "get_engine",
]
