from __future__ import annotations

import os
from typing import Any, Dict, Optional, Union

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.plugin_system.models import PlatformTag, Server
from toomanyplugins.utils.exceptions import (
    InvalidPlatformError,
    PathNotFoundError,
    ServerExistsError,
    ServerNotFoundError,
)

SERVER_LIST_KEY = "tmp:servers"


class ServerManager(PluginManagerBase):
    """Registry of deployment target servers.

    Attributes:
        _store: Persisted store holding the server map
    """

    def __init__(self, store: Any, logger_manager: Any) -> None:
        """Initialize the server manager.

        Args:
            store: Persisted key/value store
            logger_manager: The logging manager
        """
        super().__init__(name='server_manager')
        self._store = store
        self._logger = logger_manager.get_logger('server_manager')

    def initialize(self) -> None:
        self._initialized = True
        self._healthy = True

    def shutdown(self) -> None:
        self._initialized = False
        self._healthy = False

    def _load(self) -> Dict[str, Server]:
        data = self._store.get_item(SERVER_LIST_KEY) or {}
        return {server_id: Server.from_dict(raw) for server_id, raw in data.items()}

    def _save(self, servers: Dict[str, Server]) -> None:
        self._store.set_item(
            SERVER_LIST_KEY,
            {server_id: server.to_dict() for server_id, server in servers.items()}
        )

    @staticmethod
    def _parse_platform(platform: Union[PlatformTag, str], server_id: str) -> PlatformTag:
        try:
            return PlatformTag.parse(platform)
        except ValueError as e:
            raise InvalidPlatformError(str(e), server_id=server_id) from e

    @staticmethod
    def _resolve_path(path: str) -> str:
        absolute_path = os.path.abspath(os.path.expanduser(path))
        if not os.path.exists(absolute_path):
            raise PathNotFoundError(f'Invalid server path: {absolute_path}', path=absolute_path)
        return absolute_path

    def get_all_servers(self) -> Dict[str, Server]:
        return self._load()

    def get_server(self, server_id: str) -> Server:
        """Get a server by id.

        Raises:
            ServerNotFoundError: If no server has that id
        """
        servers = self._load()
        if server_id not in servers:
            raise ServerNotFoundError(f'Server not found: {server_id}', server_id=server_id)
        return servers[server_id]

    def add_server(self, server_id: str, path: str, platform: Union[PlatformTag, str]) -> Server:
        """Register a server.

        Raises:
            ServerExistsError: If the id is taken
            InvalidPlatformError: If the platform is not supported
            PathNotFoundError: If the path does not exist
        """
        servers = self._load()
        if server_id in servers:
            raise ServerExistsError(f'Server already exists: {server_id}', server_id=server_id)

        server = Server(
            id=server_id,
            path=self._resolve_path(path),
            platform=self._parse_platform(platform, server_id),
        )
        servers[server_id] = server
        self._save(servers)
        self._logger.info(f'Added {server.platform} server {server_id} at {server.path}')
        return server

    def remove_server(self, server_id: str) -> None:
        servers = self._load()
        if server_id not in servers:
            raise ServerNotFoundError(f'Server not found: {server_id}', server_id=server_id)
        del servers[server_id]
        self._save(servers)
        self._logger.info(f'Removed server {server_id}')

    def update_server(
            self,
            server_id: str,
            path: Optional[str] = None,
            platform: Optional[Union[PlatformTag, str]] = None
    ) -> Server:
        """Change a server's path and/or platform.

        Raises:
            ServerNotFoundError: If no server has that id
            InvalidPlatformError: If the platform is not supported
            PathNotFoundError: If the new path does not exist
        """
        servers = self._load()
        if server_id not in servers:
            raise ServerNotFoundError(f'Server not found: {server_id}', server_id=server_id)

        updates: Dict[str, Any] = {}
        if platform is not None:
            updates['platform'] = self._parse_platform(platform, server_id)
        if path is not None:
            updates['path'] = self._resolve_path(path)

        servers[server_id] = servers[server_id].model_copy(update=updates)
        self._save(servers)
        return servers[server_id]
