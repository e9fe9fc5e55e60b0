"""Deployment of plugin archives into server plugin directories."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any, List, Optional

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.plugin_system.cache import PluginInfoCache, calculate_file_hash
from toomanyplugins.plugin_system.models import ArchiveRecord, IndexEntry, PlatformTag, Server
from toomanyplugins.plugin_system.resolver import PluginResolver
from toomanyplugins.utils.exceptions import ArchiveError, PluginNotFoundError


def record_for_platform(records: List[ArchiveRecord], platform: PlatformTag) -> Optional[ArchiveRecord]:
    """Pick the record matching a server platform, else the first one."""
    for record in records:
        if record.supports(platform):
            return record
    return records[0] if records else None


class DeployManager(PluginManagerBase):
    """Installs, lists and removes plugins on registered servers.

    Every operation names its server explicitly. Replacing a plugin removes
    the old archive before copying the new one; there is no atomic swap.

    Attributes:
        _server_manager: Server registry
        _cache: Content cache used to read archive metadata
        _resolver: Resolver used to pick archives from the libraries
        _subdirectory: Plugin directory inside a server directory
    """

    def __init__(
            self,
            server_manager: Any,
            cache: PluginInfoCache,
            resolver: PluginResolver,
            config_manager: Any,
            logger_manager: Any
    ) -> None:
        super().__init__(name='deploy_manager')
        self._server_manager = server_manager
        self._cache = cache
        self._resolver = resolver
        self._config_manager = config_manager
        self._logger = logger_manager.get_logger('deploy_manager')
        self._subdirectory = 'plugins'
        self._extensions = {'.jar'}

    def initialize(self) -> None:
        self._subdirectory = self._config_manager.get('deploy.subdirectory', 'plugins')
        self._extensions = {ext.lower() for ext in self._config_manager.get('library.extensions', ['.jar'])}
        self._initialized = True
        self._healthy = True

    def shutdown(self) -> None:
        self._initialized = False
        self._healthy = False

    def plugins_dir(self, server: Server) -> Path:
        return Path(server.path) / self._subdirectory

    def _scan(self, directory: Path) -> List[str]:
        if not directory.is_dir():
            return []
        return sorted(
            str(child) for child in directory.iterdir()
            if child.suffix.lower() in self._extensions and child.is_file()
        )

    def list_plugins(self, server_id: str) -> List[IndexEntry]:
        """List the plugins installed on a server.

        Each archive is described by its record for the server's platform,
        or its first record. Archives without any record are left out.

        Raises:
            ServerNotFoundError: If no server has that id
        """
        server = self._server_manager.get_server(server_id)
        plugins: List[IndexEntry] = []
        for archive_path in self._scan(self.plugins_dir(server)):
            try:
                file_hash = calculate_file_hash(archive_path)
                records = self._cache.get_or_compute(archive_path, file_hash=file_hash)
            except (ArchiveError, OSError) as e:
                self._logger.warning(f'Skipping archive {archive_path}: {str(e)}')
                continue
            record = record_for_platform(records, server.platform)
            if record is not None:
                plugins.append(IndexEntry(hash=file_hash, path=archive_path, record=record))
        return plugins

    def install_or_update(self, server_id: str, archive_path: str) -> IndexEntry:
        """Copy an archive onto a server, replacing a same-named plugin.

        Args:
            server_id: Target server
            archive_path: Archive to install

        Returns:
            The installed archive as an index entry

        Raises:
            ServerNotFoundError: If no server has that id
            ArchiveError: If the archive cannot be read
            PluginNotFoundError: If the archive holds no plugin descriptor
        """
        server = self._server_manager.get_server(server_id)
        source = os.path.abspath(os.path.expanduser(archive_path))

        record = record_for_platform(self._cache.get_or_compute(source), server.platform)
        if record is None:
            raise PluginNotFoundError(f'No plugin descriptor found in {source}')

        plugins_dir = self.plugins_dir(server)
        plugins_dir.mkdir(parents=True, exist_ok=True)
        target = plugins_dir / os.path.basename(source)

        for installed in self.list_plugins(server_id):
            if installed.name == record.name and installed.path != source:
                os.unlink(installed.path)
                self._logger.info(f'Removed {installed.name} {installed.version} from {server_id}')

        if os.path.abspath(target) != source:
            shutil.copyfile(source, target)
        self._logger.info(f'Installed {record.name} {record.version} on {server_id}')

        return IndexEntry(hash=calculate_file_hash(target), path=str(target), record=record)

    def install_from_library(
            self,
            server_id: str,
            name: str,
            version: Optional[str] = None,
            latest: bool = False,
            library_id: Optional[str] = None
    ) -> IndexEntry:
        """Resolve a plugin from the libraries for a server's platform and install it.

        Raises:
            ServerNotFoundError: If no server has that id
            LibraryNotFoundError: If ``library_id`` is unknown
            PluginNotFoundError: If no suitable archive exists
            ValueError: If neither ``version`` nor ``latest`` is given
        """
        server = self._server_manager.get_server(server_id)
        result = self._resolver.select(
            name,
            version=version,
            latest=latest,
            platform=server.platform,
            library_id=library_id,
        )
        return self.install_or_update(server_id, result.entry.path)

    def remove_plugin(self, server_id: str, name: str) -> IndexEntry:
        """Delete an installed plugin by name.

        Raises:
            ServerNotFoundError: If no server has that id
            PluginNotFoundError: If no installed plugin has that name
        """
        for installed in self.list_plugins(server_id):
            if installed.name == name:
                os.unlink(installed.path)
                self._logger.info(f'Removed {name} from {server_id}')
                return installed
        raise PluginNotFoundError(f'Plugin not found: {name}', plugin_name=name)

    def plugin_info(self, server_id: str, name: str) -> Optional[IndexEntry]:
        """Find an installed plugin by name or archive file name."""
        for installed in self.list_plugins(server_id):
            if installed.name == name or installed.path.endswith(name):
                return installed
        return None
