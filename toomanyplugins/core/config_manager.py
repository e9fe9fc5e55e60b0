from __future__ import annotations

import json
import os
import pathlib
import tempfile
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.utils.exceptions import ConfigurationError, ManagerInitializationError

DEFAULT_CONFIG_PATH = pathlib.Path('~/.toomanyplugins/config.yaml')


class ConfigSchema(BaseModel):
    """Validated settings, one dict per section.

    Sections: logging, storage, library, descriptor, resolver and deploy.
    Omitted keys take the defaults below.
    """
    logging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'level': 'INFO',
            'format': 'text',
            'file': {
                'enabled': False,
                'path': '~/.toomanyplugins/logs/toomanyplugins.log',
                'rotation': '10 MB',
                'retention': '30 days',
            },
            'console': {
                'enabled': True,
                'level': 'WARNING',
            },
        },
        description='Logging settings',
    )
    storage: Dict[str, Any] = Field(
        default_factory=lambda: {
            'directory': '~/.toomanyplugins',
        },
        description='Persisted store settings',
    )
    library: Dict[str, Any] = Field(
        default_factory=lambda: {
            'extensions': ['.jar'],
        },
        description='Library scanning settings',
    )
    descriptor: Dict[str, Any] = Field(
        default_factory=lambda: {
            'fallback': 'both',
        },
        description='Descriptor extraction settings',
    )
    resolver: Dict[str, Any] = Field(
        default_factory=lambda: {
            'snapshot': 'SNAPSHOT',
            'tiebreak': 'stable',
        },
        description='Version resolution settings',
    )
    deploy: Dict[str, Any] = Field(
        default_factory=lambda: {
            'subdirectory': 'plugins',
        },
        description='Deployment settings',
    )

    @model_validator(mode='after')
    def validate_descriptor_fallback(self) -> 'ConfigSchema':
        """Validate the unresolved main class policy."""
        if self.descriptor.get('fallback') not in ('both', 'none'):
            raise ValueError("descriptor.fallback must be 'both' or 'none'.")
        return self

    @model_validator(mode='after')
    def validate_resolver(self) -> 'ConfigSchema':
        """Validate the version ordering settings."""
        if self.resolver.get('tiebreak') not in ('stable', 'lexicographic'):
            raise ValueError("resolver.tiebreak must be 'stable' or 'lexicographic'.")
        if not isinstance(self.resolver.get('snapshot'), str) or not self.resolver['snapshot']:
            raise ValueError('resolver.snapshot must be a non-empty string.')
        return self

    @model_validator(mode='after')
    def validate_library_extensions(self) -> 'ConfigSchema':
        """Validate that archive extensions look like file suffixes."""
        extensions = self.library.get('extensions')
        if not isinstance(extensions, list) or not extensions:
            raise ValueError('library.extensions must be a non-empty list.')
        for extension in extensions:
            if not isinstance(extension, str) or not extension.startswith('.'):
                raise ValueError(f"Invalid archive extension '{extension}', expected e.g. '.jar'.")
        return self


def _format_validation_errors(error: ValidationError) -> str:
    return ', '.join(
        f"{'.'.join(str(loc) for loc in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


class ConfigManager(PluginManagerBase):
    """Loads and serves the Too Many Plugins settings.

    Values are layered: schema defaults, then the config file (YAML or JSON),
    then ``TOOMANYPLUGINS_*`` environment variables. The merged result is
    validated against :class:`ConfigSchema` after every change.

    Attributes:
        _config_path: Config file location
        _env_prefix: Prefix of overriding environment variables
        _config: Current validated settings
        _loaded_from_file: True once a config file contributed values
        _env_overrides: Environment variables that were applied
        _listeners: Change callbacks per key prefix
    """

    _FILE_LOADERS: Dict[str, Callable[[str], Any]] = {
        '.yaml': yaml.safe_load,
        '.yml': yaml.safe_load,
        '.json': json.loads,
    }

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'TOOMANYPLUGINS_'
    ) -> None:
        """Create the manager; nothing is read until :meth:`initialize`.

        Args:
            config_path: Config file, ``~/.toomanyplugins/config.yaml`` if omitted
            env_prefix: Prefix of overriding environment variables
        """
        super().__init__(name='config_manager')
        self._config_path = pathlib.Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_overrides: Set[str] = set()
        self._listeners: Dict[str, List[Callable[[str, Any], None]]] = {}

    def initialize(self) -> None:
        """Build the settings from defaults, file and environment.

        Raises:
            ManagerInitializationError: If the file is unreadable or a value is invalid
        """
        try:
            self._config = ConfigSchema().model_dump()
            self._load_from_file()
            self._apply_env_vars()
            self._validate_config()
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize ConfigManager: {str(e)}',
                manager_name=self.name
            ) from e

        self._initialized = True
        self._healthy = True

    def set_logger(self, logger: Any) -> None:
        self._logger = logger.get_logger('config_manager')

    def _load_from_file(self) -> None:
        """Merge the config file over the defaults, if the file exists.

        Raises:
            ConfigurationError: If the file has an unknown suffix or cannot be parsed
        """
        if not self._config_path.exists():
            return

        loader = self._FILE_LOADERS.get(self._config_path.suffix.lower())
        if loader is None:
            raise ConfigurationError(
                f'Unsupported config file format: {self._config_path.suffix}',
                config_key='config_path'
            )

        try:
            file_config = loader(self._config_path.read_text(encoding='utf-8'))
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

        if not file_config:
            return
        if not isinstance(file_config, dict):
            raise ConfigurationError(
                f'Config file {self._config_path} must contain a mapping',
                config_key='config_path'
            )
        self._merge_config(file_config, self._config)
        self._loaded_from_file = True

    def _apply_env_vars(self) -> None:
        """Apply ``<prefix><SECTION>_<KEY>...`` environment variables.

        ``TOOMANYPLUGINS_STORAGE_DIRECTORY`` sets ``storage.directory``.
        Variables naming an unknown section are ignored.
        """
        sections = set(ConfigSchema.model_fields)
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            path = env_name[len(self._env_prefix):].lower().split('_')
            if path[0] not in sections or len(path) < 2:
                continue

            self._set_nested_value(self._config, path, self._parse_env_value(env_value))
            self._env_overrides.add(env_name)

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Read an environment value as a YAML scalar or flow collection.

        ``"true"`` becomes a bool, ``"42"`` an int and ``'[".jar", ".zip"]'``
        a list; anything YAML cannot parse is kept as the raw string.
        """
        try:
            return yaml.safe_load(value)
        except yaml.YAMLError:
            return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        *parents, leaf = path
        node = config
        for key in parents:
            if not isinstance(node.get(key), dict):
                node[key] = {}
            node = node[key]
        node[leaf] = value

    def _validate_config(self) -> None:
        """Re-validate the current settings.

        Raises:
            ConfigurationError: If a value is invalid
        """
        try:
            self._config = ConfigSchema(**self._config).model_dump()
        except ValidationError as e:
            raise ConfigurationError(
                f'Invalid configuration: {_format_validation_errors(e)}',
                details={'validation_errors': e.errors()}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a setting by dotted key, e.g. ``"resolver.tiebreak"``.

        Returns:
            The value, or ``default`` when the key is absent

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        node: Any = self._config
        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def set(self, key: str, value: Any) -> None:
        """Change a setting, notify listeners and write the config file back.

        Raises:
            ConfigurationError: If the manager isn't initialized or the value is invalid
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot modify configuration before initialization',
                config_key=key
            )

        candidate = deepcopy(self._config)
        self._set_nested_value(candidate, key.split('.'), value)
        try:
            self._config = ConfigSchema(**candidate).model_dump()
        except ValidationError as e:
            raise ConfigurationError(
                f'Invalid configuration value for {key}: {_format_validation_errors(e)}',
                config_key=key,
                details={'validation_errors': e.errors()}
            ) from e

        self._notify_listeners(key, value)
        self._save_to_file()

    def _save_to_file(self) -> None:
        """Atomically rewrite the file the settings were loaded from."""
        if not self._loaded_from_file:
            return

        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        is_yaml = self._config_path.suffix.lower() in ('.yaml', '.yml')
        with tempfile.NamedTemporaryFile(
                mode='w', delete=False, dir=self._config_path.parent, suffix='.tmp', encoding='utf-8'
        ) as tmp:
            if is_yaml:
                yaml.safe_dump(self._config, tmp, default_flow_style=False)
            else:
                json.dump(self._config, tmp, indent=2)
        os.replace(tmp.name, self._config_path)

    def _merge_config(self, from_config: Dict[str, Any], to_config: Dict[str, Any]) -> None:
        """Recursively merge ``from_config`` into ``to_config``; empty values are skipped."""
        for key, value in from_config.items():
            if isinstance(value, dict) and isinstance(to_config.get(key), dict):
                self._merge_config(value, to_config[key])
            elif value not in (None, '', {}):
                to_config[key] = value

    def register_listener(self, key: str, callback: Callable[[str, Any], None]) -> None:
        """Call ``callback(key, value)`` whenever ``key`` or a key below it changes."""
        callbacks = self._listeners.setdefault(key, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def unregister_listener(self, key: str, callback: Callable[[str, Any], None]) -> None:
        callbacks = self._listeners.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._listeners.pop(key, None)

    def _notify_listeners(self, key: str, value: Any) -> None:
        for prefix, callbacks in list(self._listeners.items()):
            if key != prefix and not key.startswith(f'{prefix}.'):
                continue
            for callback in list(callbacks):
                try:
                    callback(key, value)
                except Exception as e:
                    if self._logger:
                        self._logger.error(f'Config listener for {key} failed: {str(e)}')

    def shutdown(self) -> None:
        self._listeners.clear()
        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_overrides': sorted(self._env_overrides),
            'registered_listeners': sum(len(callbacks) for callbacks in self._listeners.values())
        })
        return status
