"""
Field decoders for fixed-width records.

Provides per-kind decoders (text, numeric, temporal), the FieldDecoder that
handles padding and null markers, and the whole-record RecordDecoder.
"""

from .base_decoder import BaseDecoder
from .field_decoder import FieldDecoder
from .numeric_decoder import NumericDecoder
from .record_decoder import RecordDecoder
from .temporal_decoder import TemporalDecoder
from .text_decoder import TextDecoder

__all__ = [
    "BaseDecoder",
    "FieldDecoder",
    "RecordDecoder",
    "TextDecoder",
    "NumericDecoder",
    "TemporalDecoder",
]
