"""
Raw record readers.
"""

from .fixed_width_reader import FixedWidthReader, RawRecord, open_records

__all__ = [
    "FixedWidthReader",
    "RawRecord",
    "open_records",
]
