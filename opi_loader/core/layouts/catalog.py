"""
Packaged catalog of the OPI source files.

The catalog names each file and its checksum; field layouts come from each
file's own descriptor (see descriptor.py) or from an explicit YAML layout file.
"""

from functools import lru_cache
from importlib import resources

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from opi_loader.errors import LayoutConfigurationError, UnknownLayoutError


class CatalogEntry(BaseModel):
    """
    One published source file.

    Attributes:
        id: File identifier (e.g. "OFNT3AA1")
        name: Published file name (e.g. "Offender Profile")
        dat_sha256: Expected SHA-256 of the extracted .dat file
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    dat_sha256: str | None = Field(None, pattern=r"^[0-9a-f]{64}$")

    class Config:
        frozen = True


class Catalog(BaseModel):
    """The file catalog plus key-field discovery rules."""

    default_reference: str
    key_fields: list[str] = Field(..., min_length=1)
    files: list[CatalogEntry] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_entries(self):
        ids = [entry.id for entry in self.files]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate file id in catalog")
        if self.default_reference not in ids:
            raise ValueError(f"Default reference '{self.default_reference}' is not in the catalog")
        return self

    @property
    def file_ids(self) -> list[str]:
        return [entry.id for entry in self.files]

    def entry(self, file_id: str) -> CatalogEntry:
        for entry in self.files:
            if entry.id == file_id:
                return entry
        raise UnknownLayoutError(file_id)

    def find_key_field(self, field_names: list[str]) -> str | None:
        """First configured key field present in field_names."""
        for candidate in self.key_fields:
            if candidate in field_names:
                return candidate
        return None


@lru_cache(maxsize=1)
def load_catalog() -> Catalog:
    """
    Load the packaged catalog.yaml.

    Raises:
        LayoutConfigurationError: If the packaged catalog is invalid
    """
    text = resources.files("opi_loader.core.layouts").joinpath("catalog.yaml").read_text(encoding="utf-8")
    try:
        return Catalog(**yaml.safe_load(text))
    except ValidationError as e:
        raise LayoutConfigurationError(f"Invalid file catalog: {e}") from e
