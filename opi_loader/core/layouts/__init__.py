"""
Record layout catalog: registry, YAML loader and descriptor parser.
"""

from .catalog import Catalog, CatalogEntry, load_catalog
from .descriptor import DescriptorParser, build_layout, build_registry_from_descriptors
from .loader import LayoutConfigLoader
from .registry import LayoutRegistry

__all__ = [
    "Catalog",
    "CatalogEntry",
    "load_catalog",
    "DescriptorParser",
    "build_layout",
    "build_registry_from_descriptors",
    "LayoutConfigLoader",
    "LayoutRegistry",
]
