from __future__ import annotations
import logging
import traceback
from typing import Any, Dict, List, Optional

from toomanyplugins.core.base import BaseManager
from toomanyplugins.utils.exceptions import ApplicationError, ManagerError, PluginManagerError


class ApplicationCore:
    """Wires the managers together in dependency order.

    The plugin system components (extractor, cache, resolver) are plain
    objects owned by the core; the managers are initialized and shut down
    in order.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Create an uninitialized core.

        Args:
            config_path: Config file, the default location if omitted
        """
        self._config_path = config_path
        self._managers: Dict[str, BaseManager] = {}
        self._order: List[str] = []
        self._initialized = False
        self._logger: Optional[logging.Logger] = None
        self.extractor: Any = None
        self.cache: Any = None
        self.resolver: Any = None

    def initialize(self) -> None:
        """Create and initialize every manager.

        Raises:
            ApplicationError: If initialization fails
        """
        try:
            self._init_config_manager()
            self._init_logging_manager()
            self._init_store_manager()
            self._init_plugin_system()
            self._init_library_manager()
            self._init_server_manager()
            self._init_deploy_manager()

            self._initialized = True
            if self._logger:
                self._logger.debug('Too Many Plugins initialization complete')

        except Exception as e:
            if self._logger:
                self._logger.error(f'Failed to initialize: {str(e)}', exc_info=True)
            elif not isinstance(e, PluginManagerError):
                traceback.print_exc()
            raise ApplicationError(f'Failed to initialize application: {str(e)}') from e

    def _register(self, name: str, manager: Any) -> None:
        manager.initialize()
        self._managers[name] = manager
        self._order.append(name)

    def _init_config_manager(self) -> None:
        # deferred: managers import from this package
        from toomanyplugins.core.config_manager import ConfigManager

        self._register('config_manager', ConfigManager(config_path=self._config_path))

    def _init_logging_manager(self) -> None:
        from toomanyplugins.core.logging_manager import LoggingManager

        config_manager = self.get_manager('config_manager')
        logging_manager = LoggingManager(config_manager)
        self._register('logging_manager', logging_manager)
        config_manager.set_logger(logging_manager)
        self._logger = logging_manager.get_logger('app_core')

    def _init_store_manager(self) -> None:
        from toomanyplugins.core.store_manager import StoreManager

        self._register('store_manager', StoreManager(
            self.get_manager('config_manager'),
            self.get_manager('logging_manager'),
        ))

    def _init_plugin_system(self) -> None:
        from toomanyplugins.plugin_system.cache import PluginInfoCache
        from toomanyplugins.plugin_system.descriptor import DescriptorExtractor

        config_manager = self.get_manager('config_manager')
        logging_manager = self.get_manager('logging_manager')

        extractor_logger = logging_manager.get_logger('descriptor')
        self.extractor = DescriptorExtractor(
            fallback=config_manager.get('descriptor.fallback', 'both'),
            logger=lambda msg, level: getattr(extractor_logger, level)(msg),
        )
        cache_logger = logging_manager.get_logger('cache')
        self.cache = PluginInfoCache(
            self.get_manager('store_manager'),
            self.extractor,
            logger=lambda msg, level: getattr(cache_logger, level)(msg),
        )

    def _init_library_manager(self) -> None:
        from toomanyplugins.core.library_manager import LibraryManager
        from toomanyplugins.plugin_system.resolver import PluginResolver

        config_manager = self.get_manager('config_manager')
        library_manager = LibraryManager(
            self.get_manager('store_manager'),
            self.cache,
            config_manager,
            self.get_manager('logging_manager'),
        )
        self._register('library_manager', library_manager)
        self.resolver = PluginResolver(
            library_manager,
            snapshot_marker=config_manager.get('resolver.snapshot', 'SNAPSHOT'),
            tiebreak=config_manager.get('resolver.tiebreak', 'stable'),
        )

    def _init_server_manager(self) -> None:
        from toomanyplugins.core.server_manager import ServerManager

        self._register('server_manager', ServerManager(
            self.get_manager('store_manager'),
            self.get_manager('logging_manager'),
        ))

    def _init_deploy_manager(self) -> None:
        from toomanyplugins.core.deploy_manager import DeployManager

        self._register('deploy_manager', DeployManager(
            self.get_manager('server_manager'),
            self.cache,
            self.resolver,
            self.get_manager('config_manager'),
            self.get_manager('logging_manager'),
        ))

    def get_manager(self, name: str) -> Optional[Any]:
        """Get a manager by name.

        Args:
            name: Manager name

        Returns:
            The manager or None if not found
        """
        return self._managers.get(name)

    def shutdown(self) -> None:
        """Shut down the managers in reverse initialization order."""
        for name in reversed(self._order):
            manager = self._managers[name]
            try:
                manager.shutdown()
            except ManagerError as e:
                if self._logger:
                    self._logger.error(f'Error shutting down {name}: {str(e)}')
        self._managers.clear()
        self._order.clear()
        self._initialized = False

    def status(self) -> Dict[str, Any]:
        """Get the status of the application and its managers."""
        return {
            'initialized': self._initialized,
            'managers': {name: self._managers[name].status() for name in self._order},
        }
