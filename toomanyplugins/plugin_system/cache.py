"""Content-addressed memoization of extracted plugin metadata.

The cache is keyed by archive path and validated against the SHA-256 of the
archive's bytes on every lookup, so a stale entry is never served.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Union, runtime_checkable

import pydantic

from toomanyplugins.plugin_system.descriptor import DescriptorExtractor
from toomanyplugins.plugin_system.models import ArchiveRecord, CacheEntry

PLUGIN_CACHE_KEY = "tmp:plugin:info-cache"


@runtime_checkable
class KeyValueStore(Protocol):
    """String-keyed map that survives process restarts."""

    def get_item(self, key: str) -> Any:
        ...

    def set_item(self, key: str, value: Any) -> None:
        ...


def calculate_file_hash(path: Union[str, Path]) -> str:
    """Calculate a SHA-256 hash of a file.

    Args:
        path: Path to the file

    Returns:
        Hex digest of the file hash
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class PluginInfoCache:
    """Archive path to ``{hash, records}`` cache backed by a key/value store.

    Attributes:
        store: Persisted store holding the cache map
        extractor: Extractor invoked on a cache miss
    """

    def __init__(
            self,
            store: KeyValueStore,
            extractor: DescriptorExtractor,
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def _load(self) -> Dict[str, Any]:
        data = self.store.get_item(PLUGIN_CACHE_KEY)
        return data if isinstance(data, dict) else {}

    def get_or_compute(
            self,
            archive_path: Union[str, Path],
            file_hash: Optional[str] = None
    ) -> List[ArchiveRecord]:
        """Return the records for an archive, extracting only on a miss.

        Args:
            archive_path: Path to the archive
            file_hash: Precomputed content hash, if the caller already has one

        Returns:
            Records for the archive's current content

        Raises:
            ArchiveNotFoundError: If the archive does not exist
            CorruptArchiveError: If extraction finds the archive unreadable
        """
        key = os.path.abspath(str(archive_path))
        if file_hash is None:
            if not os.path.isfile(key):
                # The extractor raises ArchiveNotFoundError for us.
                return self.extractor.extract(key)
            file_hash = calculate_file_hash(key)

        cache = self._load()
        cached = cache.get(key)
        if cached is not None:
            try:
                entry = CacheEntry.model_validate(cached)
            except pydantic.ValidationError:
                self.log(f"Discarding unreadable cache entry for {key}", "debug")
            else:
                if entry.hash == file_hash:
                    return entry.records

        records = self.extractor.extract(key)
        self._store_records(key, file_hash, records)
        return records

    def refresh(self, archive_path: Union[str, Path], file_hash: Optional[str] = None) -> List[ArchiveRecord]:
        """Extract an archive unconditionally and overwrite its cache entry."""
        key = os.path.abspath(str(archive_path))
        records = self.extractor.extract(key)
        if file_hash is None:
            file_hash = calculate_file_hash(key)
        self._store_records(key, file_hash, records)
        return records

    def _store_records(self, key: str, file_hash: str, records: List[ArchiveRecord]) -> None:
        cache = self._load()
        cache[key] = CacheEntry(hash=file_hash, records=records).model_dump(mode="json")
        self.store.set_item(PLUGIN_CACHE_KEY, cache)
        self.log(f"Extracted {len(records)} record(s) from {key}", "debug")
