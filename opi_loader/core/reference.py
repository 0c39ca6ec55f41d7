"""
Reference key set shared by all dependent files.

The reference pass is the only writer. Keys become visible only after the
batch holding them has been committed to the sink, so the set never holds a
key whose row could still be rolled back. Once frozen the set is read-only
and safe to share between worker threads.
"""

from typing import Any

from opi_loader.core.models.decoded_record import DecodedRecord
from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.errors import ReferenceResolverError
from opi_loader.observability.logger import get_logger
from opi_loader.observability.metrics import increment_counter, reference_keys_skipped_total

logger = get_logger(__name__)


class ReferenceResolver:
    """
    Collects the primary keys of the reference file and answers membership
    queries for foreign-key checks.
    """

    def __init__(self, layout: RecordLayout):
        """
        Args:
            layout: Layout of the reference file; must have a single-field primary key

        Raises:
            ReferenceResolverError: If the layout has no single-field primary key
        """
        if layout.key_field is None:
            raise ReferenceResolverError(
                f"Reference file {layout.file_id} needs exactly one primary-key field, "
                f"has {layout.primary_key}"
            )
        self.layout = layout
        self.key_field = layout.key_field
        self.skipped_keys = 0
        self._keys: set[Any] = set()
        self._staged: set[Any] = set()
        self._frozen = False

    @property
    def file_id(self) -> str:
        return self.layout.file_id

    @property
    def frozen(self) -> bool:
        return self._frozen

    def key_of(self, decoded: DecodedRecord) -> Any:
        return decoded.field_values.get(self.key_field)

    def is_known(self, key: Any) -> bool:
        """True if the key is committed or staged in the current batch."""
        return key in self._keys or key in self._staged

    def stage(self, key: Any) -> None:
        self._check_mutable()
        self._staged.add(key)

    def commit_staged(self) -> int:
        """Publish the keys of a committed batch; returns how many were added."""
        self._check_mutable()
        count = len(self._staged)
        self._keys |= self._staged
        self._staged.clear()
        return count

    def discard_staged(self) -> None:
        self._staged.clear()

    def skip(self, reason: str, byte_offset: int) -> None:
        """Count a reference record whose key could not be harvested."""
        self._check_mutable()
        self.skipped_keys += 1
        increment_counter(reference_keys_skipped_total, 1, file_id=self.file_id, reason=reason)
        logger.warning(
            "Reference key skipped",
            extra={"file_id": self.file_id, "byte_offset": byte_offset, "reason": reason},
        )

    def freeze(self) -> None:
        """
        End the reference pass.

        Raises:
            ReferenceResolverError: If keys are still staged (their batch never committed)
        """
        if self._staged:
            raise ReferenceResolverError(
                f"{len(self._staged)} reference keys staged but never committed"
            )
        self._frozen = True
        logger.info(
            "Reference key set frozen",
            extra={"file_id": self.file_id, "keys": len(self._keys), "skipped_keys": self.skipped_keys},
        )

    def contains(self, key: Any) -> bool:
        """
        Raises:
            ReferenceResolverError: If called before the reference pass has finished
        """
        if not self._frozen:
            raise ReferenceResolverError("Reference key set queried before the reference pass finished")
        return key in self._keys

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ReferenceResolverError("Reference key set is frozen")

    def __len__(self) -> int:
        return len(self._keys)
