"""
Engine configuration.

Values come from keyword arguments, or from OPI_* environment variables via
EngineConfig.from_env().
"""

import os

from pydantic import BaseModel, Field

DEFAULT_CHUNK_SIZE = 1 << 20

TRUE_VALUES = ("1", "true", "yes", "on")


class EngineConfig(BaseModel):
    """
    Tuning knobs of the normalization engine.

    Attributes:
        batch_size: Rows per atomic insert
        max_workers: Worker threads for dependent files
        max_truncated_records: Truncated records tolerated per file before it aborts
        quarantine_rejects: Write rejected records to the rejected_record table
        read_chunk_size: Bytes read from a source per chunk
    """

    batch_size: int = Field(2000, gt=0)
    max_workers: int = Field(4, gt=0)
    max_truncated_records: int = Field(1, ge=0)
    quarantine_rejects: bool = True
    read_chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0)

    class Config:
        frozen = True

    @classmethod
    def from_env(cls, **overrides) -> "EngineConfig":
        """
        Build a config from OPI_BATCH_SIZE, OPI_MAX_WORKERS, OPI_MAX_TRUNCATED
        and OPI_QUARANTINE; explicit overrides win.
        """
        values = {}
        env_ints = {
            "batch_size": "OPI_BATCH_SIZE",
            "max_workers": "OPI_MAX_WORKERS",
            "max_truncated_records": "OPI_MAX_TRUNCATED",
        }
        for field_name, env_var in env_ints.items():
            raw = os.getenv(env_var)
            if raw:
                try:
                    values[field_name] = int(raw)
                except ValueError:
                    raise ValueError(f"{env_var} must be an integer, got {raw!r}") from None

        quarantine = os.getenv("OPI_QUARANTINE")
        if quarantine:
            values["quarantine_rejects"] = quarantine.strip().lower() in TRUE_VALUES

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
