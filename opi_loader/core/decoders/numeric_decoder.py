"""
NumericDecoder - integer and decimal fields.

Accepted forms, after padding is trimmed:
- plain digits, optionally with a leading or trailing sign ("-12", "12-")
- mainframe zoned decimal, where the last digit carries the sign
  ("12{" = +120, "12J" = -121)
- for decimal fields, an explicit decimal point ("12.50"); without one the
  field's scale gives the implied number of decimal places
"""

import re
from decimal import Decimal
from typing import Any

from opi_loader.core.models.field_spec import FieldKind, FieldSpec
from opi_loader.errors import FieldDecodeError

from .base_decoder import BaseDecoder

POSITIVE_OVERPUNCH = "{ABCDEFGHI"
NEGATIVE_OVERPUNCH = "}JKLMNOPQR"

NUMBER = re.compile(r"^([+-]?)\s*(\d*)(?:\.(\d*))?([+-]?)$")


class NumericDecoder(BaseDecoder):
    """
    Decodes signed numbers.

    Integers decode to int, or to Decimal when the field has an implied
    scale. Decimals always decode to Decimal.
    """

    kinds = (FieldKind.INTEGER, FieldKind.DECIMAL)

    def decode(self, text: str, spec: FieldSpec, raw: bytes) -> Any:
        negative, whole, fraction = self._split(text, spec, raw)

        if fraction is not None:
            if spec.kind == FieldKind.INTEGER:
                raise self.fail(
                    FieldDecodeError.TYPE_MISMATCH, spec, raw, f"decimal point in integer field: {text!r}"
                )
            value = Decimal(f"{whole or '0'}.{fraction or '0'}")
        elif spec.kind == FieldKind.INTEGER and spec.scale == 0:
            value = int(whole)
        else:
            value = Decimal(whole).scaleb(-spec.scale)

        return -value if negative else value

    def _split(self, text: str, spec: FieldSpec, raw: bytes) -> tuple[bool, str, str | None]:
        """Return (negative, integer digits, fraction digits or None)."""
        negative = False
        last = text[-1]
        if last in POSITIVE_OVERPUNCH:
            text = text[:-1] + str(POSITIVE_OVERPUNCH.index(last))
            overpunched = True
        elif last in NEGATIVE_OVERPUNCH:
            text = text[:-1] + str(NEGATIVE_OVERPUNCH.index(last))
            negative = True
            overpunched = True
        else:
            overpunched = False

        match = NUMBER.match(text)
        if not match:
            raise self.fail(FieldDecodeError.TYPE_MISMATCH, spec, raw, f"not a number: {text!r}")

        leading, whole, fraction, trailing = match.groups()
        if not whole and not fraction:
            raise self.fail(FieldDecodeError.TYPE_MISMATCH, spec, raw, f"no digits: {text!r}")
        if (leading and trailing) or (overpunched and (leading or trailing)):
            raise self.fail(FieldDecodeError.TYPE_MISMATCH, spec, raw, f"conflicting signs: {text!r}")

        sign = leading or trailing
        if sign == "-":
            negative = True
        return negative, whole, fraction

    def encode(self, value: Any, spec: FieldSpec) -> str:
        if spec.kind == FieldKind.DECIMAL and spec.scale == 0:
            return self.fit(format(Decimal(value), "f"), spec, align="right")

        number = Decimal(value).scaleb(spec.scale)
        if number != number.to_integral_value():
            raise ValueError(f"{value} has more than {spec.scale} decimal places for field '{spec.name}'")
        digits = str(abs(int(number)))
        sign = "-" if number < 0 else ""
        return self.fit(sign + digits.rjust(spec.length - len(sign), "0"), spec, align="right")
