"""Unit tests for the content-hash keyed plugin info cache."""

import hashlib
import os

from toomanyplugins.plugin_system.cache import (
    PLUGIN_CACHE_KEY,
    PluginInfoCache,
    calculate_file_hash,
)


def test_calculate_file_hash(jars) -> None:
    path = jars.bungee("demo.jar", "Demo")

    digest = calculate_file_hash(path)

    assert digest == hashlib.sha256(path.read_bytes()).hexdigest()
    assert len(digest) == 64


def test_unchanged_archive_is_not_extracted_twice(jars, plugin_cache, extractor) -> None:
    """Test that a second lookup is served from the cache."""
    path = jars.bukkit("demo.jar", "Demo", version="1.0")

    first = plugin_cache.get_or_compute(path)
    second = plugin_cache.get_or_compute(path)

    assert second == first
    assert extractor.extract.call_count == 1


def test_changed_archive_is_extracted_again(jars, plugin_cache, extractor) -> None:
    path = jars.bukkit("demo.jar", "Demo", version="1.0")
    plugin_cache.get_or_compute(path)

    jars.bukkit("demo.jar", "Demo", version="1.1")
    records = plugin_cache.get_or_compute(path)

    assert records[0].version == "1.1"
    assert extractor.extract.call_count == 2


def test_cache_is_keyed_by_absolute_path(jars, plugin_cache, memory_store) -> None:
    path = jars.velocity("proxy.jar", "proxy", version="2.0")

    plugin_cache.get_or_compute(path)

    cache = memory_store.get_item(PLUGIN_CACHE_KEY)
    entry = cache[os.path.abspath(path)]
    assert entry["hash"] == calculate_file_hash(path)
    assert entry["records"][0]["name"] == "proxy"
    assert entry["records"][0]["platforms"] == ["Velocity"]


def test_precomputed_hash_is_trusted(jars, plugin_cache, extractor) -> None:
    path = jars.bungee("demo.jar", "Demo")
    file_hash = calculate_file_hash(path)

    plugin_cache.get_or_compute(path, file_hash=file_hash)
    plugin_cache.get_or_compute(path, file_hash=file_hash)

    assert extractor.extract.call_count == 1


def test_refresh_always_extracts(jars, plugin_cache, extractor) -> None:
    path = jars.bungee("demo.jar", "Demo")
    plugin_cache.get_or_compute(path)

    records = plugin_cache.refresh(path)

    assert records[0].name == "Demo"
    assert extractor.extract.call_count == 2
    plugin_cache.get_or_compute(path)
    assert extractor.extract.call_count == 2


def test_unreadable_cache_entry_is_replaced(jars, plugin_cache, memory_store, extractor) -> None:
    path = jars.bungee("demo.jar", "Demo")
    memory_store.set_item(PLUGIN_CACHE_KEY, {os.path.abspath(path): {"records": "nonsense"}})

    records = plugin_cache.get_or_compute(path)

    assert records[0].name == "Demo"
    assert extractor.extract.call_count == 1


def test_archives_without_descriptors_are_cached(jars, memory_store, extractor) -> None:
    plugin_cache = PluginInfoCache(memory_store, extractor)
    path = jars.build("library.jar", {"com/example/Util.class": b"\xca\xfe\xba\xbe"})

    assert plugin_cache.get_or_compute(path) == []
    assert plugin_cache.get_or_compute(path) == []
    assert extractor.extract.call_count == 1
