from __future__ import annotations

import atexit
import logging
import logging.handlers
import pathlib
import re
import sys
from typing import Any, Dict, List, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from toomanyplugins.core.base import PluginManagerBase
from toomanyplugins.utils.exceptions import ManagerInitializationError, ManagerShutdownError

DEFAULT_LOG_FILE = '~/.toomanyplugins/logs/toomanyplugins.log'
TEXT_FORMAT = '%(asctime)s %(levelname)-8s %(name)s: %(message)s'
JSON_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'

_SIZE_UNITS = {'': 1, 'B': 1, 'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}
_SIZE_PATTERN = re.compile(r'^\s*(\d+)\s*([KMG]?B)?\s*$', re.IGNORECASE)
_RETENTION_PATTERN = re.compile(r'^\s*(\d+)(\s*\w+)?\s*$')


def parse_level(value: Any, default: int) -> int:
    """Turn ``"debug"``, ``"INFO"`` or a numeric level into a logging constant."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        level = logging.getLevelName(value.strip().upper())
        if isinstance(level, int):
            return level
    return default


def parse_size(value: Any, default: int = 10 * 1024 ** 2) -> int:
    """Parse a rotation size such as ``"10 MB"`` or ``"512KB"`` into bytes."""
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        return default
    number, unit = match.groups()
    return int(number) * _SIZE_UNITS[(unit or '').upper()]


def parse_retention(value: Any, default: int = 30) -> int:
    """Parse ``"30 days"`` (or a bare count) into the number of rotated files kept."""
    if isinstance(value, int):
        return value
    match = _RETENTION_PATTERN.match(str(value))
    return int(match.group(1)) if match else default


class LoggingManager(PluginManagerBase):
    """Sets up the root logger from the ``logging`` config section.

    Console output goes to stderr since commands print their results on
    stdout. An optional rotating log file receives everything at the root
    level. ``format: json`` switches both handlers to python-json-logger and
    makes :meth:`get_logger` return structlog loggers.
    """

    def __init__(self, config_manager: Any) -> None:
        super().__init__(name='logging_manager')
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._file_handler: Optional[logging.Handler] = None
        self._console_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_structlog = False
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Replace the root logger's handlers with the configured ones.

        Raises:
            ManagerInitializationError: If a handler cannot be created
        """
        try:
            settings = self._config_manager.get('logging', {}) or {}
            root_level = parse_level(settings.get('level'), logging.INFO)
            self._enable_structlog = str(settings.get('format', 'text')).lower() == 'json'

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(root_level)
            for existing in list(self._root_logger.handlers):
                self._root_logger.removeHandler(existing)

            formatter = self._build_formatter()
            console_settings = settings.get('console', {}) or {}
            if console_settings.get('enabled', True):
                self._attach_console_handler(console_settings, formatter)

            file_settings = settings.get('file', {}) or {}
            if file_settings.get('enabled', False):
                self._attach_file_handler(file_settings, root_level, formatter)

            if self._enable_structlog:
                self._configure_structlog()

            self._config_manager.register_listener('logging', self._on_config_changed)
            atexit.register(self.shutdown)
        except Exception as e:
            raise ManagerInitializationError(
                f'Failed to initialize LoggingManager: {str(e)}',
                manager_name=self.name
            ) from e

        self._initialized = True
        self._healthy = True
        self._root_logger.debug('Logging configured', extra={'manager': self.name})

    def _build_formatter(self) -> logging.Formatter:
        if self._enable_structlog:
            return jsonlogger.JsonFormatter(
                fmt=JSON_FORMAT,
                datefmt='%Y-%m-%dT%H:%M:%S%z',
                json_ensure_ascii=False
            )
        return logging.Formatter(TEXT_FORMAT)

    def _attach(self, handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)
        return handler

    def _attach_console_handler(self, settings: Dict[str, Any], formatter: logging.Formatter) -> None:
        self._console_handler = self._attach(
            logging.StreamHandler(sys.stderr),
            parse_level(settings.get('level'), logging.WARNING),
            formatter
        )

    def _attach_file_handler(self, settings: Dict[str, Any], level: int,
                             formatter: logging.Formatter) -> None:
        """Add a size-rotated log file; ``retention`` is the number of backups kept."""
        log_file = pathlib.Path(settings.get('path') or DEFAULT_LOG_FILE).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        self._log_directory = log_file.parent

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=parse_size(settings.get('rotation', '10 MB')),
            backupCount=parse_retention(settings.get('retention', '30 days')),
            encoding='utf-8'
        )
        self._file_handler = self._attach(handler, level, formatter)

    @staticmethod
    def _configure_structlog() -> None:
        # render_to_log_kwargs leaves the final rendering to the JSON formatter
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.render_to_log_kwargs,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Return the logger a component should use.

        Before initialization, or with the text format, this is a plain
        ``logging.Logger``; with the json format it is a structlog logger.
        """
        if self._initialized and self._enable_structlog:
            return structlog.get_logger(name)
        return logging.getLogger(name)

    def _on_config_changed(self, key: str, value: Any) -> None:
        if key == 'logging.level' and self._root_logger is not None:
            level = parse_level(value, logging.INFO)
            self._root_logger.setLevel(level)
            if self._file_handler is not None:
                self._file_handler.setLevel(level)
        elif key == 'logging.console.level' and self._console_handler is not None:
            self._console_handler.setLevel(parse_level(value, logging.WARNING))

    def shutdown(self) -> None:
        """Flush, close and detach every handler this manager added.

        Raises:
            ManagerShutdownError: If a handler fails to close
        """
        if not self._initialized:
            return

        try:
            while self._handlers:
                handler = self._handlers.pop()
                handler.flush()
                handler.close()
                if self._root_logger is not None:
                    self._root_logger.removeHandler(handler)
            self._config_manager.unregister_listener('logging', self._on_config_changed)
            atexit.unregister(self.shutdown)
        except Exception as e:
            raise ManagerShutdownError(
                f'Failed to shut down LoggingManager: {str(e)}',
                manager_name=self.name
            ) from e

        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        if not self._initialized:
            return status

        active = self._root_logger.handlers if self._root_logger else []
        status.update({
            'log_directory': str(self._log_directory) if self._log_directory else None,
            'handlers': {
                'console': self._console_handler is not None and self._console_handler in active,
                'file': self._file_handler is not None and self._file_handler in active,
            },
            'structured_logging': self._enable_structlog,
        })
        return status
