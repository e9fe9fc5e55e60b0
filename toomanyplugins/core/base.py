from __future__ import annotations

import abc
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class BaseManager(Protocol):
    """Anything :class:`~toomanyplugins.core.app.ApplicationCore` can start and stop."""

    def initialize(self) -> None:
        ...

    def shutdown(self) -> None:
        ...

    def status(self) -> Dict[str, Any]:
        ...


class PluginManagerBase(abc.ABC):
    """Common lifecycle state for the Too Many Plugins managers.

    Subclasses set ``_initialized`` and ``_healthy`` once their
    :meth:`initialize` succeeds and clear them again in :meth:`shutdown`.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._initialized = False
        self._healthy = False
        self._logger: Optional[logging.Logger] = None

    @abc.abstractmethod
    def initialize(self) -> None:
        """Acquire resources; raise ``ManagerInitializationError`` on failure."""

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Release resources; raise ``ManagerShutdownError`` on failure."""

    def status(self) -> Dict[str, Any]:
        """Name and lifecycle flags; subclasses add their own keys."""
        return {
            'name': self._name,
            'initialized': self._initialized,
            'healthy': self._healthy
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def healthy(self) -> bool:
        return self._healthy

    def set_logger(self, logger: logging.Logger) -> None:
        self._logger = logger
