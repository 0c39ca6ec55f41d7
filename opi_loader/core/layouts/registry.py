"""
Layout registry: the validated catalog of record layouts.

The registry is built once at startup and is read-only afterwards, so it can
be shared by every worker thread without locking.
"""

from collections.abc import Iterable, Iterator

from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.errors import LayoutConfigurationError, UnknownLayoutError
from opi_loader.observability.logger import get_logger

logger = get_logger(__name__)


class LayoutRegistry:
    """
    Immutable mapping of file identifier -> RecordLayout.

    Cross-layout consistency is checked on construction:
    - file identifiers are unique
    - every foreign key targets a registered layout
    - the targeted field is that layout's single-field primary key
    - referencing and referenced fields have the same kind
    """

    def __init__(self, layouts: Iterable[RecordLayout]):
        self._layouts: dict[str, RecordLayout] = {}
        for layout in layouts:
            if layout.file_id in self._layouts:
                raise LayoutConfigurationError(f"Duplicate layout for file '{layout.file_id}'")
            self._layouts[layout.file_id] = layout

        self._validate_foreign_keys()

        logger.debug(
            "Layout registry built",
            extra={"layouts": len(self._layouts), "file_ids": list(self._layouts)},
        )

    def _validate_foreign_keys(self) -> None:
        for layout in self._layouts.values():
            for field_name, target in layout.foreign_keys.items():
                referenced = self._layouts.get(target.file_id)
                if referenced is None:
                    raise LayoutConfigurationError(
                        f"{layout.file_id}.{field_name} references unknown file '{target.file_id}'"
                    )
                if referenced.key_field != target.field_name:
                    raise LayoutConfigurationError(
                        f"{layout.file_id}.{field_name} references {target.file_id}.{target.field_name}, "
                        f"which is not the single primary key of {target.file_id}"
                    )
                source_kind = layout.field(field_name).kind
                target_kind = referenced.field(target.field_name).kind
                if source_kind != target_kind:
                    raise LayoutConfigurationError(
                        f"{layout.file_id}.{field_name} ({source_kind.value}) and "
                        f"{target.file_id}.{target.field_name} ({target_kind.value}) differ in kind"
                    )

    def get(self, file_id: str) -> RecordLayout:
        """
        Look up the layout for a file.

        Raises:
            UnknownLayoutError: If no layout is registered for file_id
        """
        try:
            return self._layouts[file_id]
        except KeyError:
            raise UnknownLayoutError(file_id) from None

    def file_ids(self) -> list[str]:
        return list(self._layouts)

    def dependents_of(self, file_id: str) -> list[RecordLayout]:
        """Layouts holding at least one foreign key into file_id."""
        return [
            layout
            for layout in self._layouts.values()
            if any(target.file_id == file_id for target in layout.foreign_keys.values())
        ]

    def __contains__(self, file_id: object) -> bool:
        return file_id in self._layouts

    def __iter__(self) -> Iterator[RecordLayout]:
        return iter(self._layouts.values())

    def __len__(self) -> int:
        return len(self._layouts)
