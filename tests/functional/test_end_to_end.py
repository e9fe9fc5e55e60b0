"""End-to-end tests driving the command-line interface."""

from pathlib import Path

import pytest

from toomanyplugins.main import main


@pytest.fixture
def run(temp_config_file, capsys):
    """Run a CLI command and return (exit code, stdout, stderr)."""

    def _run(*args: str):
        code = main(["--config", temp_config_file, *args])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


@pytest.fixture
def library_dir(jars) -> Path:
    directory = jars.directory / "downloads"
    jars.bukkit("ViaVersion-4.9.2.jar", "ViaVersion", version="4.9.2", directory=directory)
    jars.bukkit("ViaVersion-4.10.0.jar", "ViaVersion", version="4.10.0", directory=directory)
    jars.bukkit("ViaVersion-4.10.1-SNAPSHOT.jar", "ViaVersion", version="4.10.1-SNAPSHOT",
                directory=directory)
    jars.velocity("ViaVersion-velocity-4.10.0.jar", "viaversion", version="4.10.0", directory=directory)
    jars.bukkit("LuckPerms-5.4.jar", "LuckPerms", version="5.4", folia=True, directory=directory)
    return directory


@pytest.fixture
def server_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "servers" / "lobby"
    directory.mkdir(parents=True)
    return directory


def test_library_workflow(run, library_dir: Path) -> None:
    """Test registering, listing, searching and reindexing a library."""
    code, out, _ = run("library", "add", "downloads", str(library_dir))
    assert code == 0
    assert "Added library downloads" in out
    assert "(5 plugin(s) indexed)" in out

    code, out, _ = run("library", "list")
    assert code == 0
    assert f"downloads: {library_dir} (5 plugin(s))" in out

    code, out, _ = run("library", "list-plugin", "downloads")
    assert code == 0
    assert "LuckPerms 5.4 [Bukkit, Folia]" in out

    code, out, _ = run("library", "search", "via", "--platform", "bukkit", "--latest")
    assert code == 0
    lines = out.strip().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("ViaVersion 4.10.1-SNAPSHOT [Bukkit] (downloads)")

    code, out, _ = run("library", "search", "via", "--latest")
    assert len(out.strip().splitlines()) == 2

    (library_dir / "LuckPerms-5.4.jar").unlink()
    code, out, _ = run("library", "index", "--rebuild")
    assert code == 0
    assert "Indexed library downloads: 4 plugin(s)" in out

    code, out, _ = run("library", "remove", "downloads")
    assert code == 0
    code, out, _ = run("library", "list")
    assert "No libraries registered" in out


def test_server_and_deploy_workflow(run, library_dir: Path, server_dir: Path, jars, tmp_path: Path) -> None:
    """Test deploying from a library and managing the server's plugins."""
    assert run("library", "add", "downloads", str(library_dir))[0] == 0

    code, out, _ = run("server", "add", "lobby", str(server_dir), "--platform", "bukkit")
    assert code == 0
    assert "Added Bukkit server lobby" in out

    code, out, _ = run("library", "install", "--name", "ViaVersion", "--version", "4.10.0", "--server", "lobby")
    assert code == 0
    assert "Installed ViaVersion 4.10.0 [Bukkit] on lobby" in out
    assert (server_dir / "plugins" / "ViaVersion-4.10.0.jar").is_file()

    code, out, _ = run("library", "install", "--name", "LuckPerms", "--latest", "--server", "lobby")
    assert code == 0

    extra = jars.bukkit("Chunky.jar", "Chunky", version="1.3", description="Pregenerator")
    code, out, _ = run("server", "plugins", "lobby", "install", str(extra))
    assert code == 0

    code, out, _ = run("server", "plugins", "lobby", "list")
    assert code == 0
    assert sorted(out.strip().splitlines()) == [
        "Chunky 1.3 [Bukkit]",
        "LuckPerms 5.4 [Bukkit, Folia]",
        "ViaVersion 4.10.0 [Bukkit]",
    ]

    code, out, _ = run("server", "plugins", "lobby", "info", "Chunky")
    assert code == 0
    assert "Description: Pregenerator" in out
    assert "Platforms: Bukkit" in out

    code, out, _ = run("server", "plugins", "lobby", "remove", "Chunky")
    assert code == 0
    assert not (server_dir / "plugins" / "Chunky.jar").exists()

    code, out, err = run("server", "plugins", "lobby", "info", "Chunky")
    assert code == 1
    assert "Error: Plugin not found: Chunky" in err

    other_dir = tmp_path / "servers" / "proxy"
    other_dir.mkdir()
    code, out, _ = run("server", "update", "lobby", "--path", str(other_dir), "--platform", "velocity")
    assert code == 0
    code, out, _ = run("server", "list")
    assert f"lobby: Velocity at {other_dir}" in out

    assert run("server", "remove", "lobby")[0] == 0
    code, out, _ = run("server", "list")
    assert "No servers registered" in out


def test_errors_are_reported(run, tmp_path: Path, server_dir: Path) -> None:
    code, out, err = run("library", "list-plugin", "missing")
    assert code == 1
    assert out == ""
    assert "Error: Library not found: missing" in err

    code, _, err = run("library", "add", "ghost", str(tmp_path / "ghost"))
    assert code == 1
    assert "Error: Directory does not exist" in err

    code, _, err = run("server", "add", "lobby", str(server_dir), "--platform", "forge")
    assert code == 1
    assert "Error: Unknown platform 'forge'" in err

    code, _, err = run("server", "plugins", "nowhere", "list")
    assert code == 1
    assert "Error: Server not found: nowhere" in err

    code, _, err = run("server", "update", "nowhere")
    assert code == 1
    assert "Error: Nothing to update" in err


def test_no_command_prints_help(run) -> None:
    code, out, _ = run()
    assert code == 1
    assert "usage: toomanyplugins" in out
