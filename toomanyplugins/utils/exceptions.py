from __future__ import annotations

from typing import Any, Dict, Optional


class PluginManagerError(Exception):
    """Base exception for all Too Many Plugins errors."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        """
        Initialize exception.

        Args:
            message: Error message
            **kwargs: Additional error information
        """
        self.message = message
        details: Dict[str, Any] = dict(kwargs.pop("details", None) or {})
        details.update({key: value for key, value in kwargs.items() if value is not None})
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.message}"


class ManagerError(PluginManagerError):
    """A manager failed during its lifecycle; the message names the manager."""

    def __init__(self, message: str, manager_name: Optional[str] = None, **kwargs: Any) -> None:
        """
        Initialize manager error.

        Args:
            message: Error message
            manager_name: Name of the affected manager
            **kwargs: Additional error information
        """
        super().__init__(message, manager_name=manager_name, **kwargs)
        self.manager_name = manager_name

    def __str__(self) -> str:
        if self.manager_name:
            return f"{self.message} (Manager: {self.manager_name})"
        return super().__str__()


class ManagerInitializationError(ManagerError):
    """Raised from ``initialize()``."""

    pass


class ManagerShutdownError(ManagerError):
    """Raised from ``shutdown()``."""

    pass


class StoreError(ManagerError):
    """The persisted store could not be read or written."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, manager_name="store_manager", key=key, **kwargs)
        self.key = key


class ConfigurationError(PluginManagerError):
    """A config file or value is unusable."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        """Create the error.

        Args:
            message: What went wrong.
            config_key: The configuration key that caused the error.
            **kwargs: Additional error information.
        """
        super().__init__(message, config_key=config_key, **kwargs)
        self.config_key = config_key


class ArchiveError(PluginManagerError):
    """Base exception for errors while reading a plugin archive."""

    def __init__(self, message: str, archive_path: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize an ArchiveError.

        Args:
            message: What went wrong.
            archive_path: Path of the archive being read.
            **kwargs: Additional error information.
        """
        super().__init__(message, archive_path=archive_path, **kwargs)
        self.archive_path = archive_path


class ArchiveNotFoundError(ArchiveError):
    """The archive file does not exist."""

    pass


class EntryNotFoundError(ArchiveError):
    """The requested entry is not present inside the archive."""

    def __init__(self, message: str, archive_path: Optional[str] = None,
                 entry_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, archive_path=archive_path, entry_name=entry_name, **kwargs)
        self.entry_name = entry_name


class CorruptArchiveError(ArchiveError):
    """The archive cannot be opened as a zip container."""

    pass


class MalformedDescriptorError(ArchiveError):
    """A plugin descriptor could not be parsed into a record.

    Raised inside the descriptor probes only; callers never see it.
    """

    def __init__(self, message: str, archive_path: Optional[str] = None,
                 descriptor: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, archive_path=archive_path, descriptor=descriptor, **kwargs)
        self.descriptor = descriptor


class PathNotFoundError(PluginManagerError):
    """A library or server path does not exist."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, path=path, **kwargs)
        self.path = path


class NotDirectoryError(PathNotFoundError):
    """A library or server path exists but is not a directory."""

    pass


class LibraryError(PluginManagerError):
    """Base for library registry errors."""

    def __init__(self, message: str, library_id: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a LibraryError.

        Args:
            message: What went wrong.
            library_id: Identifier of the affected library.
            **kwargs: Additional error information.
        """
        super().__init__(message, library_id=library_id, **kwargs)
        self.library_id = library_id


class LibraryNotFoundError(LibraryError):
    """No library is registered under the given id."""

    pass


class LibraryExistsError(LibraryError):
    """A library is already registered under the given id."""

    pass


class ServerError(PluginManagerError):
    """Base for server registry errors."""

    def __init__(self, message: str, server_id: Optional[str] = None, **kwargs: Any) -> None:
        """Initialize a ServerError.

        Args:
            message: What went wrong.
            server_id: Identifier of the affected server.
            **kwargs: Additional error information.
        """
        super().__init__(message, server_id=server_id, **kwargs)
        self.server_id = server_id


class ServerNotFoundError(ServerError):
    """No server is registered under the given id."""

    pass


class ServerExistsError(ServerError):
    """A server is already registered under the given id."""

    pass


class InvalidPlatformError(ServerError):
    """A platform string does not name a supported platform."""

    pass


class PluginNotFoundError(PluginManagerError):
    """No plugin matched a lookup."""

    def __init__(self, message: str, plugin_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, plugin_name=plugin_name, **kwargs)
        self.plugin_name = plugin_name


class VersionNotFoundError(PluginNotFoundError):
    """The plugin exists, but not in the requested version."""

    def __init__(self, message: str, plugin_name: Optional[str] = None,
                 version: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, plugin_name=plugin_name, version=version, **kwargs)
        self.version = version


class ApplicationError(PluginManagerError):
    """The application core could not start."""

    pass
