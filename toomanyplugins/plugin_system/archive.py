"""Read-only access to entries inside jar-format plugin archives."""

from __future__ import annotations

import zipfile
import zlib
from pathlib import Path
from typing import List, Optional, Union

from toomanyplugins.utils.exceptions import (
    ArchiveNotFoundError,
    CorruptArchiveError,
    EntryNotFoundError,
)


def class_entry_path(class_name: str) -> str:
    """Translate a dotted class name into its compiled-class entry path.

    ``com.example.Main`` becomes ``com/example/Main.class``.
    """
    return class_name.strip().replace(".", "/") + ".class"


class JarArchive:
    """A zip-format plugin archive opened for entry lookup.

    Usable as a context manager; the underlying zip file stays open until
    :meth:`close` so several entries can be probed with a single open.

    Attributes:
        path: Path to the archive file
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._zip: Optional[zipfile.ZipFile] = None

    def __enter__(self) -> JarArchive:
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Open the archive.

        Raises:
            ArchiveNotFoundError: If the archive file does not exist
            CorruptArchiveError: If the file is not a readable zip container
        """
        if self._zip is not None:
            return
        if not self.path.is_file():
            raise ArchiveNotFoundError(
                f"Archive not found: {self.path}", archive_path=str(self.path)
            )
        try:
            self._zip = zipfile.ZipFile(self.path, "r")
        except (zipfile.BadZipFile, NotImplementedError, OSError) as e:
            raise CorruptArchiveError(
                f"Cannot open {self.path} as a zip archive: {e}",
                archive_path=str(self.path),
            ) from e

    def close(self) -> None:
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    @property
    def _archive(self) -> zipfile.ZipFile:
        if self._zip is None:
            self.open()
        return self._zip

    def names(self) -> List[str]:
        return self._archive.namelist()

    def has_entry(self, entry_name: str) -> bool:
        try:
            self._archive.getinfo(entry_name)
        except KeyError:
            return False
        return True

    def read_bytes(self, entry_name: str) -> bytes:
        """Read the raw bytes of an entry.

        Args:
            entry_name: Exact, case-sensitive path of the entry

        Returns:
            Entry content

        Raises:
            EntryNotFoundError: If the entry is absent
            CorruptArchiveError: If the entry data cannot be decompressed, is
                encrypted or uses an unsupported compression method
        """
        try:
            info = self._archive.getinfo(entry_name)
        except KeyError:
            raise EntryNotFoundError(
                f"Entry {entry_name} not found in {self.path}",
                archive_path=str(self.path),
                entry_name=entry_name,
            ) from None
        try:
            return self._archive.read(info)
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError,
                RuntimeError, NotImplementedError) as e:
            raise CorruptArchiveError(
                f"Failed to read {entry_name} from {self.path}: {e}",
                archive_path=str(self.path),
            ) from e

    def read_text(self, entry_name: str, encoding: str = "utf-8-sig") -> str:
        return self.read_bytes(entry_name).decode(encoding, errors="replace")

    def read_optional_text(self, entry_name: str) -> Optional[str]:
        """Read an entry as text, or return None if it is absent."""
        if not self.has_entry(entry_name):
            return None
        return self.read_text(entry_name)


def read_entry(archive_path: Union[str, Path], entry_name: str) -> str:
    """Read a single entry from an archive as text.

    Args:
        archive_path: Path to the archive
        entry_name: Exact path of the entry inside the archive

    Returns:
        Entry content decoded as UTF-8

    Raises:
        ArchiveNotFoundError: If the archive does not exist
        EntryNotFoundError: If the entry is absent
        CorruptArchiveError: If the archive is not a valid zip container or the
            entry cannot be read
    """
    with JarArchive(archive_path) as archive:
        return archive.read_text(entry_name)
