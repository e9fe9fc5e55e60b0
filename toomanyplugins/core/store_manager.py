"""File-backed persisted key/value store.

Each key is one JSON document under the storage directory. Every write
replaces the whole document, so two processes updating the same key at the
same time lose one of the updates (last write wins).
"""

from __future__ import annotations

import json
import os
import pathlib
import re
import tempfile
from typing import Any, Dict, List, Optional

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.utils.exceptions import (
    ManagerInitializationError,
    StoreError,
)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StoreManager(PluginManagerBase):
    """Persisted string-keyed map.

    Attributes:
        _config_manager: The configuration manager
        _logger: Logger instance
        _directory: Directory holding one JSON file per key
    """

    def __init__(self, config_manager: Any, logger_manager: Any) -> None:
        """Initialize the store manager.

        Args:
            config_manager: The configuration manager
            logger_manager: The logging manager
        """
        super().__init__(name='store_manager')
        self._config_manager = config_manager
        self._logger = logger_manager.get_logger('store_manager')
        self._directory: Optional[pathlib.Path] = None

    def initialize(self) -> None:
        """Create the storage directory.

        Raises:
            ManagerInitializationError: If the directory cannot be created
        """
        try:
            storage_config = self._config_manager.get('storage', {})
            directory = storage_config.get('directory', '~/.toomanyplugins')
            self._directory = pathlib.Path(os.path.expanduser(directory)).resolve()
            self._directory.mkdir(parents=True, exist_ok=True)

            self._logger.debug(f'Store Manager initialized at {self._directory}')

            self._initialized = True
            self._healthy = True
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize StoreManager: {str(e)}',
                manager_name=self.name
            ) from e

    @property
    def directory(self) -> Optional[pathlib.Path]:
        return self._directory

    def _key_path(self, key: str) -> pathlib.Path:
        if not self._initialized or self._directory is None:
            raise StoreError('Store accessed before initialization', key=key)
        return self._directory / f'{_UNSAFE_KEY_CHARS.sub("_", key)}.json'

    def get_item(self, key: str) -> Any:
        """Read the value stored under a key.

        Args:
            key: Store key

        Returns:
            The stored value, or None if the key has never been set

        Raises:
            StoreError: If the stored document cannot be read
        """
        path = self._key_path(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f'Failed to read store key {key}: {str(e)}', key=key) from e

    def set_item(self, key: str, value: Any) -> None:
        """Replace the value stored under a key.

        The document is written to a temporary file and moved into place.

        Args:
            key: Store key
            value: JSON-serializable value

        Raises:
            StoreError: If the value cannot be written
        """
        path = self._key_path(key)
        tmp_name: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile(
                    mode='w',
                    suffix='.tmp',
                    dir=path.parent,
                    delete=False,
                    encoding='utf-8'
            ) as tmp:
                tmp_name = tmp.name
                json.dump(value, tmp, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreError(f'Failed to write store key {key}: {str(e)}', key=key) from e

    def remove_item(self, key: str) -> None:
        path = self._key_path(key)
        if path.exists():
            path.unlink()

    def keys(self) -> List[str]:
        if self._directory is None:
            return []
        return sorted(p.stem for p in self._directory.glob('*.json'))

    def clear(self) -> None:
        """Remove every stored key."""
        for path in list(self._directory.glob('*.json')) if self._directory else []:
            path.unlink()

    def shutdown(self) -> None:
        """Shut down the store manager."""
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'directory': str(self._directory) if self._directory else None,
            'keys': len(self.keys()),
        })
        return status
