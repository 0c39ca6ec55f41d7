"""
TextDecoder - free text and code fields.
"""

from typing import Any

from opi_loader.core.models.field_spec import FieldKind, FieldSpec

from .base_decoder import BaseDecoder


class TextDecoder(BaseDecoder):
    kinds = (FieldKind.TEXT, FieldKind.CODE)

    def decode(self, text: str, spec: FieldSpec, raw: bytes) -> Any:
        return text

    def encode(self, value: Any, spec: FieldSpec) -> str:
        return self.fit(str(value), spec)
