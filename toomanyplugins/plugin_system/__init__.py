"""Plugin archive indexing system for Too Many Plugins.

This package reads plugin metadata out of server plugin archives, caches it
by content hash and answers search and version queries over indexed
libraries.

Modules:
    archive: Read-only access to entries inside plugin archives
    descriptor: Platform descriptor probes and main-class platform detection
    cache: Content-hash keyed memoization of extracted metadata
    models: Platform tags, archive records, libraries and servers
    resolver: Library search and version ordering
    cli: Command-line interface
"""

from __future__ import annotations

from toomanyplugins.plugin_system.archive import JarArchive, read_entry
from toomanyplugins.plugin_system.cache import PluginInfoCache, calculate_file_hash
from toomanyplugins.plugin_system.descriptor import DescriptorExtractor, detect_platform
from toomanyplugins.plugin_system.models import (
    ArchiveRecord,
    IndexEntry,
    Library,
    PlatformTag,
    Server,
)
from toomanyplugins.plugin_system.resolver import PluginResolver, SearchResult, compare_versions

__all__ = [
    "JarArchive",
    "read_entry",
    "PluginInfoCache",
    "calculate_file_hash",
    "DescriptorExtractor",
    "detect_platform",
    "ArchiveRecord",
    "IndexEntry",
    "Library",
    "PlatformTag",
    "Server",
    "PluginResolver",
    "SearchResult",
    "compare_versions",
]
