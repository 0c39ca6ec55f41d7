"""
TemporalDecoder - date and time fields.
"""

from datetime import date, datetime, time
from typing import Any

from opi_loader.core.models.field_spec import FieldKind, FieldSpec
from opi_loader.errors import FieldDecodeError

from .base_decoder import BaseDecoder


def render(value: date | time | datetime, pattern: str) -> str:
    """strftime with %Y always rendered as four digits (glibc drops the zero padding)."""
    if "%Y" in pattern:
        pattern = pattern.replace("%Y", f"{value.year:04d}")
    return value.strftime(pattern)


class TemporalDecoder(BaseDecoder):
    """
    Parses dates and times with the field's strptime pattern.

    Parsing is strict: the text must be exactly what the pattern renders,
    so "2020-1-5" is rejected for "%Y-%m-%d".
    """

    kinds = (FieldKind.DATE, FieldKind.TIME)

    def decode(self, text: str, spec: FieldSpec, raw: bytes) -> date | time:
        if spec.kind == FieldKind.DATE:
            code = FieldDecodeError.INVALID_DATE
        else:
            code = FieldDecodeError.INVALID_TIME

        pattern = spec.pattern
        try:
            parsed = datetime.strptime(text, pattern)
        except ValueError as e:
            raise self.fail(code, spec, raw, str(e)) from e

        if render(parsed, pattern) != text:
            raise self.fail(code, spec, raw, f"{text!r} is not in canonical form {pattern!r}")

        return parsed.date() if spec.kind == FieldKind.DATE else parsed.time()

    def encode(self, value: Any, spec: FieldSpec) -> str:
        return self.fit(render(value, spec.pattern), spec)
