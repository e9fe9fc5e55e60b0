"""Command-line interface for Too Many Plugins.

This module provides the ``library`` and ``server`` command groups used to
manage plugin libraries, search them and deploy plugins onto servers.
"""

from __future__ import annotations

import argparse
import sys
from typing import Callable, List, Optional

from toomanyplugins.core.app import ApplicationCore
from toomanyplugins.plugin_system.models import IndexEntry, PlatformTag
from toomanyplugins.utils.exceptions import PluginManagerError

Handler = Callable[[ApplicationCore, argparse.Namespace], int]


def _describe(entry: IndexEntry) -> str:
    return f"{entry.name} {entry.version or '-'} [{entry.record.platform_label()}]"


def _fail(error: Exception) -> int:
    print(f"Error: {error}", file=sys.stderr)
    return 1


def library_add_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    """Handle the library add command.

    Args:
        app: Initialized application core
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    library = app.get_manager("library_manager").add_library(args.id, args.path)
    print(f"Added library {library.id} at {library.path} ({len(library.entries)} plugin(s) indexed)")
    return 0


def library_remove_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    app.get_manager("library_manager").remove_library(args.id)
    print(f"Removed library {args.id}")
    return 0


def library_list_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    libraries = app.get_manager("library_manager").get_all_libraries()
    if not libraries:
        print("No libraries registered")
        return 0

    for library in libraries.values():
        print(f"{library.id}: {library.path} ({len(library.entries)} plugin(s))")
    return 0


def library_list_plugin_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    library = app.get_manager("library_manager").get_library(args.id)
    for entry in library.entries:
        print(f"{_describe(entry)} {entry.path}")
    return 0


def library_index_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    """Handle the library index command.

    Reindexes one library, or every library when no id is given.
    """
    library_manager = app.get_manager("library_manager")
    if args.id:
        libraries = [library_manager.reindex(args.id, rebuild=args.rebuild)]
    else:
        libraries = library_manager.reindex_all(rebuild=args.rebuild)

    for library in libraries:
        print(f"Indexed library {library.id}: {len(library.entries)} plugin(s)")
    return 0


def library_search_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    """Handle the library search command.

    Args:
        app: Initialized application core
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    results = app.resolver.find(
        name=args.query,
        platform=args.platform,
        library_id=args.library,
        latest=args.latest,
    )
    if not results:
        print(f"No plugins found matching '{args.query}'")
        return 0

    for result in results:
        print(f"{_describe(result.entry)} ({result.library_id}) {result.entry.path}")
    return 0


def library_install_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    installed = app.get_manager("deploy_manager").install_from_library(
        args.server,
        args.name,
        version=args.version,
        latest=args.latest,
        library_id=args.library,
    )
    print(f"Installed {_describe(installed)} on {args.server}")
    return 0


def server_add_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    server = app.get_manager("server_manager").add_server(args.id, args.path, args.platform)
    print(f"Added {server.platform} server {server.id} at {server.path}")
    return 0


def server_remove_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    app.get_manager("server_manager").remove_server(args.id)
    print(f"Removed server {args.id}")
    return 0


def server_update_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    """Handle the server update command.

    At least one of ``--path`` and ``--platform`` must be given.
    """
    if args.path is None and args.platform is None:
        raise ValueError("Nothing to update, pass --path and/or --platform")

    server = app.get_manager("server_manager").update_server(
        args.id, path=args.path, platform=args.platform
    )
    print(f"Updated server {server.id}: {server.platform} at {server.path}")
    return 0


def server_list_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    servers = app.get_manager("server_manager").get_all_servers()
    if not servers:
        print("No servers registered")
        return 0

    for server in servers.values():
        print(f"{server.id}: {server.platform} at {server.path}")
    return 0


def plugins_install_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    installed = app.get_manager("deploy_manager").install_or_update(args.server_id, args.archive)
    print(f"Installed {_describe(installed)} on {args.server_id}")
    return 0


def plugins_list_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    plugins = app.get_manager("deploy_manager").list_plugins(args.server_id)
    if not plugins:
        print(f"No plugins installed on {args.server_id}")
        return 0

    for entry in plugins:
        print(_describe(entry))
    return 0


def plugins_remove_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    removed = app.get_manager("deploy_manager").remove_plugin(args.server_id, args.name)
    print(f"Removed {_describe(removed)} from {args.server_id}")
    return 0


def plugins_info_command(app: ApplicationCore, args: argparse.Namespace) -> int:
    """Handle the server plugins info command.

    Args:
        app: Initialized application core
        args: Command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    entry = app.get_manager("deploy_manager").plugin_info(args.server_id, args.name)
    if entry is None:
        print(f"Error: Plugin not found: {args.name}", file=sys.stderr)
        return 1

    record = entry.record
    print(f"Name: {record.name}")
    print(f"Version: {record.version}")
    print(f"Platforms: {record.platform_label()}")
    if record.description:
        print(f"Description: {record.description}")
    if record.authors:
        print(f"Authors: {', '.join(record.authors)}")
    if record.load_before:
        print(f"Load before: {', '.join(record.load_before)}")
    if record.soft_depend:
        print(f"Soft depends: {', '.join(record.soft_depend)}")
    print(f"File: {entry.path}")
    print(f"SHA-256: {entry.hash}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser for every command group."""
    platforms = ", ".join(p.value for p in PlatformTag)

    parser = argparse.ArgumentParser(
        prog="toomanyplugins",
        description="Too Many Plugins - Minecraft server plugin manager",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to configuration file")

    groups = parser.add_subparsers(dest="group", help="Command group")

    # Library commands
    library_parser = groups.add_parser("library", help="Manage plugin libraries")
    library_commands = library_parser.add_subparsers(dest="command", help="Library command")

    add_parser = library_commands.add_parser("add", help="Register a directory as a library")
    add_parser.add_argument("id", help="Library id")
    add_parser.add_argument("path", help="Directory holding plugin archives")
    add_parser.set_defaults(handler=library_add_command)

    remove_parser = library_commands.add_parser("remove", help="Forget a library")
    remove_parser.add_argument("id", help="Library id")
    remove_parser.set_defaults(handler=library_remove_command)

    list_parser = library_commands.add_parser("list", help="List libraries")
    list_parser.set_defaults(handler=library_list_command)

    list_plugin_parser = library_commands.add_parser("list-plugin", help="List the plugins of a library")
    list_plugin_parser.add_argument("id", help="Library id")
    list_plugin_parser.set_defaults(handler=library_list_plugin_command)

    index_parser = library_commands.add_parser("index", help="Reindex one or all libraries")
    index_parser.add_argument("id", nargs="?", default=None, help="Library id (default: all)")
    index_parser.add_argument("--rebuild", action="store_true", help="Re-extract every archive")
    index_parser.set_defaults(handler=library_index_command)

    search_parser = library_commands.add_parser("search", help="Search the libraries")
    search_parser.add_argument("query", help="Part of the plugin name")
    search_parser.add_argument("--library", help="Only search this library")
    search_parser.add_argument("--platform", help=f"Only show plugins for this platform ({platforms})")
    search_parser.add_argument("--latest", action="store_true", help="Only show the newest version")
    search_parser.set_defaults(handler=library_search_command)

    install_parser = library_commands.add_parser("install", help="Install a plugin from the libraries")
    install_parser.add_argument("--name", required=True, help="Plugin name")
    version_group = install_parser.add_mutually_exclusive_group(required=True)
    version_group.add_argument("--version", help="Exact version to install")
    version_group.add_argument("--latest", action="store_true", help="Install the newest version")
    install_parser.add_argument("--library", help="Only consider this library")
    install_parser.add_argument("--server", required=True, help="Target server id")
    install_parser.set_defaults(handler=library_install_command)

    # Server commands
    server_parser = groups.add_parser("server", help="Manage servers")
    server_commands = server_parser.add_subparsers(dest="command", help="Server command")

    server_add_parser = server_commands.add_parser("add", help="Register a server")
    server_add_parser.add_argument("id", help="Server id")
    server_add_parser.add_argument("path", help="Server directory")
    server_add_parser.add_argument("--platform", required=True, help=f"Server platform ({platforms})")
    server_add_parser.set_defaults(handler=server_add_command)

    server_remove_parser = server_commands.add_parser("remove", help="Forget a server")
    server_remove_parser.add_argument("id", help="Server id")
    server_remove_parser.set_defaults(handler=server_remove_command)

    server_update_parser = server_commands.add_parser("update", help="Change a server")
    server_update_parser.add_argument("id", help="Server id")
    server_update_parser.add_argument("--path", help="New server directory")
    server_update_parser.add_argument("--platform", help=f"New server platform ({platforms})")
    server_update_parser.set_defaults(handler=server_update_command)

    server_list_parser = server_commands.add_parser("list", help="List servers")
    server_list_parser.set_defaults(handler=server_list_command)

    plugins_parser = server_commands.add_parser("plugins", help="Manage the plugins of a server")
    plugins_parser.add_argument("server_id", help="Server id")
    plugins_commands = plugins_parser.add_subparsers(dest="plugins_command", help="Plugin command")

    plugins_install_parser = plugins_commands.add_parser("install", help="Install or update an archive")
    plugins_install_parser.add_argument("archive", help="Path to the plugin archive")
    plugins_install_parser.set_defaults(handler=plugins_install_command)

    plugins_list_parser = plugins_commands.add_parser("list", help="List installed plugins")
    plugins_list_parser.set_defaults(handler=plugins_list_command)

    plugins_remove_parser = plugins_commands.add_parser("remove", help="Remove an installed plugin")
    plugins_remove_parser.add_argument("name", help="Plugin name")
    plugins_remove_parser.set_defaults(handler=plugins_remove_command)

    plugins_info_parser = plugins_commands.add_parser("info", help="Show an installed plugin")
    plugins_info_parser.add_argument("name", help="Plugin name or archive file name")
    plugins_info_parser.set_defaults(handler=plugins_info_command)

    return parser


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    handler: Optional[Handler] = getattr(parsed, "handler", None)
    if handler is None:
        parser.print_help()
        return 1

    app = ApplicationCore(config_path=parsed.config)
    try:
        app.initialize()
        return handler(app, parsed)
    except (PluginManagerError, ValueError) as e:
        return _fail(e)
    finally:
        app.shutdown()
