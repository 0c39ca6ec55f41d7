"""
Source files on disk.

The downloader extracts each published archive into its own directory:

    <data_dir>/OFNT3AA1/OFNT3AA1.dat
    <data_dir>/OFNT3AA1/OFNT3AA1.des
"""

import hashlib
from pathlib import Path
from typing import BinaryIO

from opi_loader.errors import SourceIntegrityError
from opi_loader.observability.logger import get_logger

logger = get_logger(__name__)

HASH_CHUNK_SIZE = 1 << 20


class DataDirectory:
    """Looks up data and descriptor files by file id."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def dat_path(self, file_id: str) -> Path:
        return self.root / file_id / f"{file_id}.dat"

    def des_path(self, file_id: str) -> Path:
        return self.root / file_id / f"{file_id}.des"

    def available_ids(self) -> list[str]:
        """Ids with both a .dat and a .des file, sorted."""
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and self.dat_path(entry.name).is_file() and self.des_path(entry.name).is_file()
        )

    def read_descriptor(self, file_id: str) -> str:
        """
        Raises:
            SourceIntegrityError: If the descriptor is missing
        """
        path = self.des_path(file_id)
        try:
            return path.read_text(encoding="latin-1")
        except FileNotFoundError:
            raise SourceIntegrityError(f"Descriptor not found: {path}") from None

    def open_dat(self, file_id: str) -> BinaryIO:
        """
        Raises:
            SourceIntegrityError: If the data file is missing
        """
        path = self.dat_path(file_id)
        try:
            return open(path, "rb")
        except FileNotFoundError:
            raise SourceIntegrityError(f"Data file not found: {path}") from None

    def sha256(self, file_id: str) -> str:
        digest = hashlib.sha256()
        with self.open_dat(file_id) as stream:
            for chunk in iter(lambda: stream.read(HASH_CHUNK_SIZE), b""):
                digest.update(chunk)
        return digest.hexdigest()

    def verify(self, file_id: str, expected_sha256: str) -> None:
        """
        Check a data file against its published checksum.

        Raises:
            SourceIntegrityError: If the file is missing or the checksum differs
        """
        actual = self.sha256(file_id)
        if actual != expected_sha256.lower():
            raise SourceIntegrityError(
                f"Checksum mismatch for {self.dat_path(file_id)}: expected {expected_sha256}, got {actual}"
            )
        logger.info("Checksum verified", extra={"file_id": file_id})
