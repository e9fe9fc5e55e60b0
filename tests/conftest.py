"""Pytest configuration and fixtures for Too Many Plugins tests."""

from __future__ import annotations

import json
import struct
import zipfile
from pathlib import Path
from typing import Any, Dict, Generator, Optional, Union
from unittest.mock import MagicMock

import pytest
import yaml

from toomanyplugins.core.app import ApplicationCore
from toomanyplugins.core.config_manager import ConfigManager
from toomanyplugins.core.deploy_manager import DeployManager
from toomanyplugins.core.library_manager import LibraryManager
from toomanyplugins.core.server_manager import ServerManager
from toomanyplugins.plugin_system.cache import PluginInfoCache
from toomanyplugins.plugin_system.descriptor import DescriptorExtractor
from toomanyplugins.plugin_system.resolver import PluginResolver

# Compiled classes only need the constant-pool strings the detector looks for.
CLASS_HEADER = b"\xca\xfe\xba\xbe\x00\x00\x00\x34"
BUKKIT_CLASS = CLASS_HEADER + b"\x01\x00\x21org/bukkit/plugin/java/JavaPlugin\x00"
BUNGEE_CLASS = CLASS_HEADER + b"\x01\x00\x22net/md_5/bungee/api/plugin/Plugin\x00"
UNKNOWN_CLASS = CLASS_HEADER + b"\x01\x00\x10java/lang/Object\x00"

DEFAULT_MAIN = "com.example.plugin.Main"


class JarFactory:
    """Builds plugin archives on disk."""

    bukkit_class = BUKKIT_CLASS
    bungee_class = BUNGEE_CLASS
    unknown_class = UNKNOWN_CLASS

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def build(
            self,
            filename: str,
            entries: Dict[str, Union[str, bytes]],
            directory: Optional[Path] = None,
            compression: int = zipfile.ZIP_DEFLATED
    ) -> Path:
        target_dir = directory or self.directory
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / filename
        with zipfile.ZipFile(path, "w", compression) as archive:
            archive.writestr("META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
            for name, content in entries.items():
                archive.writestr(name, content)
        return path

    def bukkit(
            self,
            filename: str,
            name: str,
            version: Any = "1.0",
            folia: bool = False,
            class_content: Optional[bytes] = BUKKIT_CLASS,
            directory: Optional[Path] = None,
            **fields: Any
    ) -> Path:
        descriptor: Dict[str, Any] = {"name": name, "version": version, "main": DEFAULT_MAIN}
        if folia:
            descriptor["folia-supported"] = True
        descriptor.update(fields)
        entries: Dict[str, Union[str, bytes]] = {"plugin.yml": yaml.safe_dump(descriptor)}
        if class_content is not None:
            entries["com/example/plugin/Main.class"] = class_content
        return self.build(filename, entries, directory)

    def bungee(
            self,
            filename: str,
            name: str,
            version: Any = "1.0",
            directory: Optional[Path] = None
    ) -> Path:
        descriptor = {"name": name, "version": version, "main": DEFAULT_MAIN}
        return self.build(filename, {"bungee.yml": yaml.safe_dump(descriptor)}, directory)

    def velocity(
            self,
            filename: str,
            plugin_id: str,
            version: Any = "1.0",
            directory: Optional[Path] = None,
            **fields: Any
    ) -> Path:
        descriptor: Dict[str, Any] = {"id": plugin_id, "version": version}
        descriptor.update(fields)
        return self.build(filename, {"velocity-plugin.json": json.dumps(descriptor)}, directory)

    @staticmethod
    def corrupt_entry(path: Path, entry_name: str) -> None:
        """Flip one byte of an entry's stored data so its CRC no longer matches."""
        with zipfile.ZipFile(path) as archive:
            info = archive.getinfo(entry_name)
        data = bytearray(path.read_bytes())
        offset = info.header_offset
        name_length, extra_length = struct.unpack("<HH", data[offset + 26:offset + 30])
        position = offset + 30 + name_length + extra_length + info.compress_size // 2
        data[position] ^= 0xFF
        path.write_bytes(bytes(data))

    @staticmethod
    def _central_record(data: bytearray, entry_name: str) -> int:
        encoded = entry_name.encode("utf-8")
        position = data.find(b"PK\x01\x02")
        while position != -1:
            name_length = struct.unpack("<H", data[position + 28:position + 30])[0]
            if data[position + 46:position + 46 + name_length] == encoded:
                return position
            position = data.find(b"PK\x01\x02", position + 46)
        raise KeyError(entry_name)

    def mark_encrypted(self, path: Path, entry_name: str) -> None:
        """Set the "encrypted" flag bit on an entry's central directory record."""
        data = bytearray(path.read_bytes())
        data[self._central_record(data, entry_name) + 8] |= 0x01
        path.write_bytes(bytes(data))

    def set_compression_method(self, path: Path, entry_name: str, method: int) -> None:
        data = bytearray(path.read_bytes())
        position = self._central_record(data, entry_name) + 10
        data[position:position + 2] = struct.pack("<H", method)
        path.write_bytes(bytes(data))


class MemoryStore:
    """Dict-backed store that serializes values like the file store does."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}

    def get_item(self, key: str) -> Any:
        if key not in self.data:
            return None
        return json.loads(self.data[key])

    def set_item(self, key: str, value: Any) -> None:
        self.data[key] = json.dumps(value)


def make_config_mock(values: Optional[Dict[str, Any]] = None) -> MagicMock:
    """Create a ConfigManager stand-in answering ``get`` from a flat dict."""
    settings = {
        "library.extensions": [".jar"],
        "deploy.subdirectory": "plugins",
    }
    settings.update(values or {})
    config_manager = MagicMock()
    config_manager.get.side_effect = lambda key, default=None: settings.get(key, default)
    return config_manager


@pytest.fixture
def config_factory():
    """Factory for ConfigManager stand-ins, see make_config_mock."""
    return make_config_mock


@pytest.fixture
def jars(tmp_path: Path) -> JarFactory:
    """Create a JarFactory writing into a scratch directory."""
    return JarFactory(tmp_path / "jars")


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def logger_manager() -> MagicMock:
    """Create a mock LoggingManager."""
    return MagicMock()


@pytest.fixture
def extractor() -> MagicMock:
    """A DescriptorExtractor whose ``extract`` calls are counted."""
    return MagicMock(wraps=DescriptorExtractor())


@pytest.fixture
def plugin_cache(memory_store: MemoryStore, extractor: MagicMock) -> PluginInfoCache:
    return PluginInfoCache(memory_store, extractor)


@pytest.fixture
def library_manager(
        memory_store: MemoryStore,
        plugin_cache: PluginInfoCache,
        logger_manager: MagicMock
) -> Generator[LibraryManager, None, None]:
    manager = LibraryManager(memory_store, plugin_cache, make_config_mock(), logger_manager)
    manager.initialize()
    yield manager
    manager.shutdown()


@pytest.fixture
def resolver(library_manager: LibraryManager) -> PluginResolver:
    return PluginResolver(library_manager)


@pytest.fixture
def server_manager(
        memory_store: MemoryStore,
        logger_manager: MagicMock
) -> Generator[ServerManager, None, None]:
    manager = ServerManager(memory_store, logger_manager)
    manager.initialize()
    yield manager
    manager.shutdown()


@pytest.fixture
def deploy_manager(
        server_manager: ServerManager,
        plugin_cache: PluginInfoCache,
        resolver: PluginResolver,
        logger_manager: MagicMock
) -> Generator[DeployManager, None, None]:
    manager = DeployManager(
        server_manager, plugin_cache, resolver, make_config_mock(), logger_manager
    )
    manager.initialize()
    yield manager
    manager.shutdown()


@pytest.fixture
def temp_config_file(tmp_path: Path) -> str:
    """Create a temporary configuration file for testing."""
    test_config = {
        "logging": {
            "level": "DEBUG",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "WARNING"},
        },
        "storage": {"directory": str(tmp_path / "store")},
    }
    config_path = tmp_path / "config.yaml"
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(test_config, f)
    return str(config_path)


@pytest.fixture
def config_manager(temp_config_file: str) -> Generator[ConfigManager, None, None]:
    """Create a ConfigManager instance for testing."""
    manager = ConfigManager(config_path=temp_config_file)
    manager.initialize()
    yield manager
    manager.shutdown()


@pytest.fixture
def app_core(temp_config_file: str) -> Generator[ApplicationCore, None, None]:
    """Create an ApplicationCore instance for testing."""
    app = ApplicationCore(config_path=temp_config_file)
    app.initialize()
    yield app
    app.shutdown()
