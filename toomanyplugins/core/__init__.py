"""Core package containing the essential managers and components."""

from toomanyplugins.core.app import ApplicationCore
from toomanyplugins.core.base import BaseManager, PluginManagerBase
from toomanyplugins.core.config_manager import ConfigManager
from toomanyplugins.core.deploy_manager import DeployManager
from toomanyplugins.core.library_manager import LibraryManager
from toomanyplugins.core.logging_manager import LoggingManager
from toomanyplugins.core.server_manager import ServerManager
from toomanyplugins.core.store_manager import StoreManager
