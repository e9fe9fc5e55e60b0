"""Unit tests for the Library Manager and incremental indexing."""

import shutil
import zipfile
from pathlib import Path

import pytest

from toomanyplugins.core.library_manager import LIBRARIES_KEY, LibraryManager
from toomanyplugins.plugin_system.models import PlatformTag
from toomanyplugins.utils.exceptions import (
    LibraryExistsError,
    LibraryNotFoundError,
    NotDirectoryError,
    PathNotFoundError,
)


@pytest.fixture
def library_dir(jars) -> Path:
    """A library directory with a Bukkit, a Velocity and a non-plugin file."""
    directory = jars.directory / "library"
    jars.bukkit("Foo-1.0.jar", "Foo", version="1.0", directory=directory)
    jars.velocity("bar-2.0.jar", "bar", version="2.0", directory=directory)
    (directory / "README.txt").write_text("not an archive")
    jars.bukkit("Nested-1.0.jar", "Nested", directory=directory / "old")
    return directory


def snapshot(library):
    return [entry.model_dump() for entry in library.entries]


def test_add_library_indexes_archives(library_manager, library_dir: Path) -> None:
    """Test that adding a library scans its top level and indexes it."""
    library = library_manager.add_library("main", str(library_dir))

    assert library.id == "main"
    assert library.path == str(library_dir)
    assert [(e.name, e.version, e.platforms) for e in library.entries] == [
        ("Foo", "1.0", [PlatformTag.BUKKIT]),
        ("bar", "2.0", [PlatformTag.VELOCITY]),
    ]
    assert library_manager.get_library("main") == library
    assert list(library_manager.get_all_libraries()) == ["main"]


def test_add_library_validation(library_manager, library_dir: Path, tmp_path: Path) -> None:
    library_manager.add_library("main", str(library_dir))

    with pytest.raises(LibraryExistsError):
        library_manager.add_library("main", str(library_dir))
    with pytest.raises(PathNotFoundError, match="Directory does not exist"):
        library_manager.add_library("ghost", str(tmp_path / "ghost"))
    with pytest.raises(NotDirectoryError):
        library_manager.add_library("file", str(library_dir / "README.txt"))


def test_scan_archives(library_manager, library_dir: Path, tmp_path: Path) -> None:
    assert library_manager.scan_archives(str(library_dir)) == [
        str(library_dir / "Foo-1.0.jar"),
        str(library_dir / "bar-2.0.jar"),
    ]
    assert library_manager.scan_archives(str(tmp_path / "missing")) == []


def test_incremental_reindex_is_idempotent(library_manager, library_dir: Path, extractor) -> None:
    """Test that reindexing an unchanged library changes nothing and extracts nothing."""
    first = library_manager.add_library("main", str(library_dir))
    extractor.reset_mock()

    second = library_manager.reindex("main")
    third = library_manager.reindex("main")

    assert snapshot(second) == snapshot(first)
    assert snapshot(third) == snapshot(first)
    extractor.extract.assert_not_called()


def test_rebuild_extracts_every_archive(library_manager, library_dir: Path, extractor) -> None:
    first = library_manager.add_library("main", str(library_dir))
    extractor.reset_mock()

    rebuilt = library_manager.reindex("main", rebuild=True)

    assert extractor.extract.call_count == 2
    assert snapshot(rebuilt) == snapshot(first)


def test_removed_archive_leaves_the_index(library_manager, library_dir: Path) -> None:
    library_manager.add_library("main", str(library_dir))

    (library_dir / "Foo-1.0.jar").unlink()
    library = library_manager.reindex("main")

    assert [e.name for e in library.entries] == ["bar"]


def test_identical_copy_gets_its_own_entry(library_manager, library_dir: Path) -> None:
    """Test that a byte-identical archive under a new name is indexed separately."""
    original = library_manager.add_library("main", str(library_dir))
    foo = original.entries[0]

    shutil.copyfile(library_dir / "Foo-1.0.jar", library_dir / "Foo-copy.jar")
    library = library_manager.reindex("main")

    foos = [e for e in library.entries if e.name == "Foo"]
    assert len(foos) == 2
    assert {e.path for e in foos} == {foo.path, str(library_dir / "Foo-copy.jar")}
    assert {e.hash for e in foos} == {foo.hash}


def test_changed_archive_is_reextracted(library_manager, library_dir: Path, jars) -> None:
    library_manager.add_library("main", str(library_dir))

    jars.bukkit("Foo-1.0.jar", "Foo", version="1.1", folia=True, directory=library_dir)
    library = library_manager.reindex("main")

    foo = library.entries[0]
    assert (foo.name, foo.version) == ("Foo", "1.1")
    assert foo.platforms == [PlatformTag.BUKKIT, PlatformTag.FOLIA]


def test_corrupt_archive_is_skipped(library_manager, library_dir: Path, logger_manager) -> None:
    (library_dir / "broken.jar").write_bytes(b"definitely not a zip")

    library = library_manager.add_library("main", str(library_dir))

    assert sorted(e.name for e in library.entries) == ["Foo", "bar"]
    logger = logger_manager.get_logger.return_value
    assert any("broken.jar" in call.args[0] for call in logger.warning.call_args_list)


def test_unreadable_entries_do_not_abort_reindex(library_manager, library_dir: Path, jars) -> None:
    """Test that encrypted or damaged entries only affect their own archive."""
    encrypted = jars.bukkit("Locked-1.0.jar", "Locked", directory=library_dir)
    jars.mark_encrypted(encrypted, "plugin.yml")
    aes = jars.velocity("Aes-1.0.jar", "aes", directory=library_dir)
    jars.set_compression_method(aes, "velocity-plugin.json", 99)
    damaged = jars.build(
        "Damaged-1.0.jar",
        {
            "velocity-plugin.json": '{"id": "damaged", "version": "1.0"}',
            "plugin.yml": "name: Damaged\nmain: a.B\n",
            "a/B.class": jars.bukkit_class,
        },
        directory=library_dir,
        compression=zipfile.ZIP_STORED,
    )
    jars.corrupt_entry(damaged, "a/B.class")

    library_manager.add_library("main", str(library_dir))
    library = library_manager.reindex("main", rebuild=True)

    assert sorted((e.name, e.platforms[0]) for e in library.entries) == [
        ("Foo", PlatformTag.BUKKIT),
        ("bar", PlatformTag.VELOCITY),
        ("damaged", PlatformTag.VELOCITY),
    ]


def test_multi_descriptor_archive_yields_several_entries(library_manager, jars) -> None:
    directory = jars.directory / "bridges"
    jars.build(
        "bridge.jar",
        {
            "bungee.yml": "name: Bridge\nversion: '3.0'\n",
            "velocity-plugin.json": '{"id": "bridge", "version": "3.0"}',
        },
        directory=directory,
    )

    library = library_manager.add_library("bridges", str(directory))

    assert [e.platforms for e in library.entries] == [[PlatformTag.VELOCITY], [PlatformTag.BUNGEECORD]]
    assert len({e.hash for e in library.entries}) == 1


def test_remove_library(library_manager, library_dir: Path) -> None:
    library_manager.add_library("main", str(library_dir))

    library_manager.remove_library("main")

    with pytest.raises(LibraryNotFoundError):
        library_manager.get_library("main")
    with pytest.raises(LibraryNotFoundError):
        library_manager.remove_library("main")
    with pytest.raises(LibraryNotFoundError):
        library_manager.reindex("main")


def test_reindex_all_and_persistence(
        library_manager, library_dir: Path, jars, memory_store, plugin_cache, logger_manager, config_factory
) -> None:
    library_manager.add_library("main", str(library_dir))
    other = jars.directory / "other"
    jars.bungee("proxy.jar", "Proxy", directory=other)
    library_manager.add_library("other", str(other))

    libraries = library_manager.reindex_all()

    assert [library.id for library in libraries] == ["main", "other"]
    assert set(memory_store.get_item(LIBRARIES_KEY)) == {"main", "other"}

    reopened = LibraryManager(memory_store, plugin_cache, config_factory(), logger_manager)
    reopened.initialize()
    assert reopened.get_library("other").entries[0].name == "Proxy"


def test_configured_extensions(memory_store, plugin_cache, logger_manager, config_factory, jars) -> None:
    directory = jars.directory / "mixed"
    jars.bungee("a.jar", "A", directory=directory)
    jars.bungee("b.ZIP", "B", directory=directory)

    manager = LibraryManager(
        memory_store, plugin_cache, config_factory({"library.extensions": [".jar", ".zip"]}), logger_manager
    )
    manager.initialize()
    library = manager.add_library("mixed", str(directory))

    assert sorted(e.name for e in library.entries) == ["A", "B"]
    assert manager.status()["extensions"] == [".jar", ".zip"]
