"""
Explicit layout configuration loaded from YAML.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from opi_loader.core.models.record_layout import RecordLayout
from opi_loader.errors import LayoutConfigurationError

from .registry import LayoutRegistry


class LayoutConfigLoader:
    """
    Loads record layouts from a YAML configuration file.

    Every field is declared explicitly; nothing is inferred from data.

    Expected YAML format:
    ```yaml
    layouts:
      - file_id: A
        name: Person
        record_width: 12
        primary_key: [ID]
        fields:
          - {name: ID, offset: 0, length: 2, kind: code, nullable: false}
          - {name: NAME, offset: 2, length: 10, kind: text}
      - file_id: B
        name: Visit
        record_width: 10
        foreign_keys:
          PID: {file_id: A, field_name: ID}
        fields:
          - {name: PID, offset: 0, length: 2, kind: code}
          - {name: VISITED, offset: 2, length: 8, kind: date}
    ```
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the layout config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Layout configuration file not found: {config_path}")

    def load(self) -> list[RecordLayout]:
        """
        Parse every layout in the file.

        Raises:
            LayoutConfigurationError: If the YAML is malformed or a layout is invalid
        """
        with open(self.config_path) as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise LayoutConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if not config or "layouts" not in config:
            raise LayoutConfigurationError("Configuration file must contain 'layouts' section")
        if not isinstance(config["layouts"], list):
            raise LayoutConfigurationError("'layouts' must be a list")

        return [self._parse_layout(idx, entry) for idx, entry in enumerate(config["layouts"])]

    def load_registry(self) -> LayoutRegistry:
        return LayoutRegistry(self.load())

    def _parse_layout(self, idx: int, entry: Any) -> RecordLayout:
        if not isinstance(entry, dict):
            raise LayoutConfigurationError(f"Layout #{idx} must be a mapping")
        try:
            return RecordLayout(**entry)
        except ValidationError as e:
            file_id = entry.get("file_id", f"#{idx}")
            raise LayoutConfigurationError(f"Invalid layout {file_id}: {e}") from e
