"""
Base decoder interface for field kinds.

A decoder turns the trimmed, non-null text of one field into its typed value
and back. Null handling and padding live in FieldDecoder.
"""

from abc import ABC, abstractmethod
from typing import Any

from opi_loader.core.models.field_spec import FieldKind, FieldSpec
from opi_loader.errors import FieldDecodeError


class BaseDecoder(ABC):
    """Abstract base class for per-kind field decoders."""

    kinds: tuple[FieldKind, ...] = ()

    @abstractmethod
    def decode(self, text: str, spec: FieldSpec, raw: bytes) -> Any:
        """
        Decode a field value.

        Args:
            text: Field text with padding removed; never empty
            spec: Field specification
            raw: Original byte slice, carried into errors

        Raises:
            FieldDecodeError: If the text is not a valid value of the kind
        """

    @abstractmethod
    def encode(self, value: Any, spec: FieldSpec) -> str:
        """
        Render a typed value as exactly spec.length characters.

        Raises:
            ValueError: If the value does not fit the field
        """

    @staticmethod
    def fail(code: str, spec: FieldSpec, raw: bytes, message: str) -> FieldDecodeError:
        return FieldDecodeError(code=code, field_name=spec.name, raw=raw, message=message)

    @staticmethod
    def fit(text: str, spec: FieldSpec, align: str = "left") -> str:
        """Pad text to the field width, refusing values that would be cut."""
        if len(text) > spec.length:
            raise ValueError(f"Value {text!r} does not fit {spec.length}-byte field '{spec.name}'")
        return text.ljust(spec.length) if align == "left" else text.rjust(spec.length)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kinds={[k.value for k in self.kinds]})"
