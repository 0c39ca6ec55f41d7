"""
Parser for the .des field descriptors shipped alongside each data file.

A descriptor lists one field per line:

    CMDORNUM      OFFENDER NC DOC ID NUMBER          CHAR      1       7
    CPCOPBAL      COP BALANCE                        DECIMAL   171     11
    DTOFUPDT      DATE OF LAST UPDATE                DATE      222     10

i.e. code, description, type, 1-based start column and length. Code and
description are separated by at least two spaces; lines that do not match
(headers, blank lines) are ignored.
"""

import re
from collections.abc import Mapping

from pydantic import ValidationError

from opi_loader.core.models.field_spec import FieldKind, FieldSpec
from opi_loader.core.models.record_layout import ForeignKey, RecordLayout
from opi_loader.errors import LayoutConfigurationError
from opi_loader.observability.logger import get_logger

from .catalog import Catalog
from .registry import LayoutRegistry

logger = get_logger(__name__)

DESCRIPTOR_LINE = re.compile(r"^(\S+)\s{2,}(.+?)\s{2,}([A-Z]+)\s+(\d+)\s+(\d+)")

# (kind, format) per descriptor type; anything unlisted is plain text
DES_TYPES = {
    "CHAR": (FieldKind.TEXT, None),
    "DECIMAL": (FieldKind.DECIMAL, None),
    "DATE": (FieldKind.DATE, "%Y-%m-%d"),
    "TIME": (FieldKind.TIME, "%H:%M:%S"),
}


class DescriptorParser:
    """Turns descriptor text into ordered FieldSpecs."""

    def parse(self, text: str) -> list[FieldSpec]:
        """
        Parse a descriptor.

        Args:
            text: Full descriptor contents

        Returns:
            Field specifications in descriptor order; a repeated field code
            keeps its first definition

        Raises:
            LayoutConfigurationError: If a matching line declares an impossible field
        """
        fields: list[FieldSpec] = []
        seen: set[str] = set()

        for line_no, line in enumerate(text.splitlines(), start=1):
            match = DESCRIPTOR_LINE.match(line)
            if not match:
                continue

            code, description, des_type, start, length = match.groups()
            if code in seen:
                logger.warning(
                    "Duplicate field code in descriptor, keeping first definition",
                    extra={"field_name": code, "line": line_no},
                )
                continue

            kind, fmt = DES_TYPES.get(des_type, (FieldKind.TEXT, None))
            try:
                fields.append(
                    FieldSpec(
                        name=code,
                        offset=int(start) - 1,
                        length=int(length),
                        kind=kind,
                        format=fmt,
                        description=description.strip(),
                    )
                )
            except ValidationError as e:
                raise LayoutConfigurationError(f"Descriptor line {line_no} ({code}) is invalid: {e}") from e
            seen.add(code)

        return fields


def build_layout(
    file_id: str,
    name: str,
    fields: list[FieldSpec],
    key_field: str | None,
    reference_id: str,
    reference_key: str | None,
) -> RecordLayout:
    """
    Build the layout of one descriptor-described file.

    The reference file's key field becomes its non-nullable primary key;
    every other file's key field becomes a nullable foreign key to it.
    """
    if not fields:
        raise LayoutConfigurationError(f"Descriptor for {file_id} declares no fields")

    primary_key: list[str] = []
    foreign_keys: dict[str, ForeignKey] = {}

    if file_id == reference_id:
        if key_field is None:
            raise LayoutConfigurationError(f"Reference file {file_id} has no key field")
        fields = [
            spec.model_copy(update={"nullable": False}) if spec.name == key_field else spec
            for spec in fields
        ]
        primary_key = [key_field]
    elif key_field is not None and reference_key is not None:
        foreign_keys[key_field] = ForeignKey(file_id=reference_id, field_name=reference_key)
    else:
        raise LayoutConfigurationError(f"{file_id} has no key field linking it to {reference_id}")

    try:
        return RecordLayout(
            file_id=file_id,
            name=name,
            record_width=max(spec.end for spec in fields),
            fields=fields,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            framing="newline",
        )
    except ValidationError as e:
        raise LayoutConfigurationError(f"Invalid layout for {file_id}: {e}") from e


def build_registry_from_descriptors(
    catalog: Catalog,
    descriptor_texts: Mapping[str, str],
    reference_id: str,
) -> LayoutRegistry:
    """
    Build a registry from the descriptors of the given files.

    Args:
        catalog: File catalog providing names and key-field candidates
        descriptor_texts: file_id -> descriptor text; must include reference_id
        reference_id: File whose key is the primary key of the whole dataset

    Returns:
        Validated LayoutRegistry

    Raises:
        UnknownLayoutError: If reference_id or a descriptor id is not in the catalog
        LayoutConfigurationError: If a descriptor is missing, empty or lacks a key field
    """
    reference_entry = catalog.entry(reference_id)
    if reference_id not in descriptor_texts:
        raise LayoutConfigurationError(f"No descriptor available for reference file {reference_id}")

    parser = DescriptorParser()
    parsed = {file_id: parser.parse(text) for file_id, text in descriptor_texts.items()}

    reference_key = catalog.find_key_field([spec.name for spec in parsed[reference_id]])
    if reference_key is None:
        raise LayoutConfigurationError(
            f"Reference file {reference_id} has none of the key fields {catalog.key_fields}"
        )

    layouts = []
    for file_id, fields in parsed.items():
        entry = reference_entry if file_id == reference_id else catalog.entry(file_id)
        key_field = catalog.find_key_field([spec.name for spec in fields])
        layouts.append(
            build_layout(file_id, entry.name, fields, key_field, reference_id, reference_key)
        )

    return LayoutRegistry(layouts)
