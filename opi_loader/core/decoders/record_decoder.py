"""
RecordDecoder: one raw record -> DecodedRecord.
"""

from opi_loader.core.models.decoded_record import DecodedRecord
from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.errors import FieldDecodeError, RecordDecodeError

from .field_decoder import FieldDecoder


class RecordDecoder:
    """
    Decodes every field of a layout.

    All fields are attempted so a rejected record reports every problem at
    once rather than only the first.
    """

    def __init__(self, layout: RecordLayout, field_decoder: FieldDecoder | None = None):
        self.layout = layout
        self.field_decoder = field_decoder or FieldDecoder()

    def decode(self, byte_offset: int, data: bytes) -> DecodedRecord:
        """
        Args:
            byte_offset: Position of the record in its file
            data: Record bytes, exactly record_width long

        Raises:
            RecordDecodeError: If one or more fields fail to decode
        """
        values = {}
        errors: list[FieldDecodeError] = []

        for spec in self.layout.fields:
            try:
                values[spec.name] = self.field_decoder.decode(spec.slice(data), spec, self.layout.encoding)
            except FieldDecodeError as e:
                errors.append(e)

        if errors:
            raise RecordDecodeError(byte_offset, errors)

        return DecodedRecord(file_id=self.layout.file_id, byte_offset=byte_offset, field_values=values)
