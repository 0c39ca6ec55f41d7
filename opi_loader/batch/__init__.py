"""
Batch loading: readers, writers, the per-file pipeline and the engine.
"""

from .engine import ErrorAggregator, NormalizationEngine
from .pipeline import FilePipeline

__all__ = [
    "ErrorAggregator",
    "FilePipeline",
    "NormalizationEngine",
]
