"""
FieldDecoder: raw byte slice <-> typed value for any FieldSpec.
"""

import re
from collections.abc import Mapping
from typing import Any

from opi_loader.core.models.field_spec import FieldKind, FieldSpec
from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.errors import FieldDecodeError

from .base_decoder import BaseDecoder
from .numeric_decoder import NumericDecoder
from .temporal_decoder import TemporalDecoder
from .text_decoder import TextDecoder

PAD_CHARS = " \x00"

DATE_NULL_MARKERS = frozenset({"0001-01-01", "00010101"})

UNKNOWN_MARKER = re.compile(r"^\?+$")
ZERO_DATE = re.compile(r"^(?=.*0)[0\-/.:]+$")


class FieldDecoder:
    """
    Decodes fixed-width field slices.

    Null values are recognised before kind-specific decoding:
    - a slice made only of padding (spaces or NULs)
    - a slice made only of '?' (the exporter's unknown-value marker)
    - for dates, 0001-01-01 or an all-zero value
    A null in a non-nullable field is a required_field_empty error.
    """

    def __init__(self, decoders: list[BaseDecoder] | None = None):
        self._decoders: dict[FieldKind, BaseDecoder] = {}
        for decoder in decoders or [TextDecoder(), NumericDecoder(), TemporalDecoder()]:
            for kind in decoder.kinds:
                self._decoders[kind] = decoder

    def decoder_for(self, kind: FieldKind) -> BaseDecoder:
        try:
            return self._decoders[kind]
        except KeyError:
            raise ValueError(f"No decoder registered for field kind '{kind.value}'") from None

    def decode(self, raw: bytes, spec: FieldSpec, encoding: str = "latin-1") -> Any:
        """
        Decode one field slice.

        Args:
            raw: Exactly the field's bytes from the record
            spec: Field specification
            encoding: Character encoding of the record

        Returns:
            Typed value, or None for null

        Raises:
            FieldDecodeError: If the slice is not a valid value for the field
        """
        try:
            text = raw.decode(encoding).strip(PAD_CHARS)
        except UnicodeDecodeError as e:
            raise FieldDecodeError(FieldDecodeError.TYPE_MISMATCH, spec.name, raw, str(e)) from e

        if self.is_null(text, spec):
            if not spec.nullable:
                raise FieldDecodeError(
                    FieldDecodeError.REQUIRED_FIELD_EMPTY, spec.name, raw, "value is required"
                )
            return None

        return self.decoder_for(spec.kind).decode(text, spec, raw)

    @staticmethod
    def is_null(text: str, spec: FieldSpec) -> bool:
        if not text or UNKNOWN_MARKER.match(text):
            return True
        if spec.kind == FieldKind.DATE:
            return text in DATE_NULL_MARKERS or bool(ZERO_DATE.match(text))
        return False

    def encode(self, value: Any, spec: FieldSpec, encoding: str = "latin-1") -> bytes:
        """
        Render a typed value as the field's fixed-width bytes (None -> spaces).

        Raises:
            ValueError: If the value does not fit the field
        """
        if value is None:
            return b" " * spec.length
        return self.decoder_for(spec.kind).encode(value, spec).encode(encoding)

    def encode_record(self, layout: RecordLayout, values: Mapping[str, Any]) -> bytes:
        """Build a full record; fields missing from values are left blank."""
        record = bytearray(b" " * layout.record_width)
        for spec in layout.fields:
            record[spec.offset:spec.end] = self.encode(values.get(spec.name), spec, layout.encoding)
        return bytes(record)
