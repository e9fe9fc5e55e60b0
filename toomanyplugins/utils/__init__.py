"""Utility functions and classes for Too Many Plugins."""

from toomanyplugins.utils.exceptions import (
    ApplicationError,
    ArchiveError,
    ArchiveNotFoundError,
    ConfigurationError,
    CorruptArchiveError,
    EntryNotFoundError,
    InvalidPlatformError,
    LibraryError,
    LibraryExistsError,
    LibraryNotFoundError,
    MalformedDescriptorError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    NotDirectoryError,
    PathNotFoundError,
    PluginManagerError,
    PluginNotFoundError,
    ServerError,
    ServerExistsError,
    ServerNotFoundError,
    StoreError,
    VersionNotFoundError,
)

__all__ = [
    "ApplicationError",
    "ArchiveError",
    "ArchiveNotFoundError",
    "ConfigurationError",
    "CorruptArchiveError",
    "EntryNotFoundError",
    "InvalidPlatformError",
    "LibraryError",
    "LibraryExistsError",
    "LibraryNotFoundError",
    "MalformedDescriptorError",
    "ManagerError",
    "ManagerInitializationError",
    "ManagerShutdownError",
    "NotDirectoryError",
    "PathNotFoundError",
    "PluginManagerError",
    "PluginNotFoundError",
    "ServerError",
    "ServerExistsError",
    "ServerNotFoundError",
    "StoreError",
    "VersionNotFoundError",
]
