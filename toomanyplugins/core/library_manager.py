"""Plugin libraries and their incremental indexes."""

from __future__ import annotations

import os
import pathlib
from typing import Any, Dict, List, Set

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.plugin_system.cache import PluginInfoCache, calculate_file_hash
from toomanyplugins.plugin_system.models import IndexEntry, Library
from toomanyplugins.utils.exceptions import (
    ArchiveError,
    LibraryExistsError,
    LibraryNotFoundError,
    NotDirectoryError,
    PathNotFoundError,
)

LIBRARIES_KEY = "tmp:plugin:libraries"


class LibraryManager(PluginManagerBase):
    """Registers plugin libraries and keeps their indexes in sync with disk.

    Every mutation reads the full library map from the store, changes it in
    memory and writes it back.

    Attributes:
        _store: Persisted store
        _cache: Content cache used to extract new or changed archives
        _extensions: Archive file extensions, lower-case
    """

    def __init__(
            self,
            store: Any,
            cache: PluginInfoCache,
            config_manager: Any,
            logger_manager: Any
    ) -> None:
        """Initialize the library manager.

        Args:
            store: Persisted key/value store
            cache: Content cache for archive metadata
            config_manager: The configuration manager
            logger_manager: The logging manager
        """
        super().__init__(name='library_manager')
        self._store = store
        self._cache = cache
        self._config_manager = config_manager
        self._logger = logger_manager.get_logger('library_manager')
        self._extensions: Set[str] = {'.jar'}

    def initialize(self) -> None:
        extensions = self._config_manager.get('library.extensions', ['.jar'])
        self._extensions = {ext.lower() for ext in extensions}
        self._initialized = True
        self._healthy = True

    def shutdown(self) -> None:
        self._initialized = False
        self._healthy = False

    def _load(self) -> Dict[str, Library]:
        data = self._store.get_item(LIBRARIES_KEY) or {}
        return {library_id: Library.from_dict(raw) for library_id, raw in data.items()}

    def _save(self, libraries: Dict[str, Library]) -> None:
        self._store.set_item(
            LIBRARIES_KEY,
            {library_id: library.to_dict() for library_id, library in libraries.items()}
        )

    def get_all_libraries(self) -> Dict[str, Library]:
        return self._load()

    def get_library(self, library_id: str) -> Library:
        """Get a library by id.

        Raises:
            LibraryNotFoundError: If no library has that id
        """
        libraries = self._load()
        if library_id not in libraries:
            raise LibraryNotFoundError(f'Library not found: {library_id}', library_id=library_id)
        return libraries[library_id]

    def add_library(self, library_id: str, path: str) -> Library:
        """Register a directory as a library and index it.

        Args:
            library_id: Unique library id
            path: Directory holding the archives

        Returns:
            The freshly indexed library

        Raises:
            LibraryExistsError: If the id is taken
            PathNotFoundError: If the path does not exist
            NotDirectoryError: If the path is not a directory
        """
        libraries = self._load()
        if library_id in libraries:
            raise LibraryExistsError(f'Library already exists: {library_id}', library_id=library_id)

        absolute_path = os.path.abspath(os.path.expanduser(path))
        if not os.path.exists(absolute_path):
            raise PathNotFoundError(f'Directory does not exist: {absolute_path}', path=absolute_path)
        if not os.path.isdir(absolute_path):
            raise NotDirectoryError(f'Not a directory: {absolute_path}', path=absolute_path)

        libraries[library_id] = Library(id=library_id, path=absolute_path)
        self._save(libraries)
        self._logger.info(f'Added library {library_id} at {absolute_path}')

        return self.reindex(library_id)

    def remove_library(self, library_id: str) -> None:
        """Forget a library and its index.

        Raises:
            LibraryNotFoundError: If no library has that id
        """
        libraries = self._load()
        if library_id not in libraries:
            raise LibraryNotFoundError(f'Library not found: {library_id}', library_id=library_id)
        del libraries[library_id]
        self._save(libraries)
        self._logger.info(f'Removed library {library_id}')

    def scan_archives(self, directory: str) -> List[str]:
        """List the archives directly inside a directory.

        Args:
            directory: Directory to scan (not recursed)

        Returns:
            Sorted absolute paths of files with an archive extension
        """
        absolute = pathlib.Path(directory).expanduser().absolute()
        try:
            children = list(absolute.iterdir())
        except OSError as e:
            self._logger.error(f'Failed to read directory {absolute}: {str(e)}')
            return []
        return sorted(
            str(child) for child in children
            if child.suffix.lower() in self._extensions and child.is_file()
        )

    def reindex(self, library_id: str, rebuild: bool = False) -> Library:
        """Reconcile a library's index with the archives on disk.

        In incremental mode an archive keeps its existing entries when an
        entry for the same path and content hash is already indexed; every
        other archive goes through the content cache. Entries for archives
        that are no longer on disk are dropped. With ``rebuild`` every
        archive is extracted again, bypassing the cache.

        Archives that cannot be read are logged and contribute no entries.

        Args:
            library_id: Library to index
            rebuild: Discard the existing index first

        Returns:
            The updated library

        Raises:
            LibraryNotFoundError: If no library has that id
        """
        libraries = self._load()
        if library_id not in libraries:
            raise LibraryNotFoundError(f'Library not found: {library_id}', library_id=library_id)

        library = libraries[library_id]
        archives = self.scan_archives(library.path)

        existing: Dict[tuple, List[IndexEntry]] = {}
        if not rebuild:
            for entry in library.entries:
                existing.setdefault((entry.path, entry.hash), []).append(entry)

        entries: List[IndexEntry] = []
        retained = extracted = skipped = 0

        for archive_path in archives:
            try:
                file_hash = calculate_file_hash(archive_path)
            except OSError as e:
                self._logger.warning(f'Skipping unreadable archive {archive_path}: {str(e)}')
                skipped += 1
                continue

            kept = existing.get((archive_path, file_hash))
            if kept:
                entries.extend(kept)
                retained += 1
                continue

            try:
                if rebuild:
                    records = self._cache.refresh(archive_path, file_hash=file_hash)
                else:
                    records = self._cache.get_or_compute(archive_path, file_hash=file_hash)
            except ArchiveError as e:
                self._logger.warning(f'Skipping archive {archive_path}: {str(e)}')
                skipped += 1
                continue

            entries.extend(
                IndexEntry(hash=file_hash, path=archive_path, record=record)
                for record in records
            )
            extracted += 1

        library.entries = entries
        self._save(libraries)

        self._logger.info(
            f'Indexed library {library_id}: {len(archives)} archive(s), '
            f'{retained} unchanged, {extracted} extracted, {skipped} skipped'
        )
        return library

    def reindex_all(self, rebuild: bool = False) -> List[Library]:
        return [self.reindex(library_id, rebuild=rebuild) for library_id in self._load()]

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({'extensions': sorted(self._extensions)})
        return status
