"""
Batch sink writers.
"""

from .quarantine_writer import BatchQuarantineWriter
from .table_writer import BatchTableWriter

__all__ = [
    "BatchTableWriter",
    "BatchQuarantineWriter",
]
