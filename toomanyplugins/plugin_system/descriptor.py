"""Plugin descriptor extraction.

Probes an archive for the descriptors of each supported platform and turns
every one it recognizes into an :class:`ArchiveRecord`. The probes are
independent: a bridge plugin may ship descriptors for several platforms, and
a missing or malformed descriptor only silences the probe that reads it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import yaml

from toomanyplugins.plugin_system.archive import JarArchive, class_entry_path
from toomanyplugins.plugin_system.models import ArchiveRecord, PlatformTag
from toomanyplugins.utils.exceptions import ArchiveError, MalformedDescriptorError

VELOCITY_DESCRIPTOR = "velocity-plugin.json"
BUNGEE_DESCRIPTOR = "bungee.yml"
COMMON_DESCRIPTOR = "plugin.yml"

# Checked in order; the first marker present in the main class wins.
CLASS_MARKERS: Tuple[Tuple[bytes, PlatformTag], ...] = (
    (b"net/md_5/bungee/api/plugin/Plugin", PlatformTag.BUNGEECORD),
    (b"org/bukkit/plugin/java/JavaPlugin", PlatformTag.BUKKIT),
    (b"org/bukkit/Bukkit", PlatformTag.BUKKIT),
)

FALLBACK_BOTH = "both"
FALLBACK_NONE = "none"
FALLBACK_POLICIES = (FALLBACK_BOTH, FALLBACK_NONE)


def detect_platform(class_content: bytes) -> Optional[PlatformTag]:
    """Infer a platform from the symbolic references of a compiled class.

    Args:
        class_content: Raw bytes of the plugin's main class

    Returns:
        The platform whose API the class references, or None if unknown
    """
    for marker, platform in CLASS_MARKERS:
        if marker in class_content:
            return platform
    return None


def _ensure_string(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


class DescriptorExtractor:
    """Extracts plugin metadata records from jar archives.

    Attributes:
        fallback: What to tag a Bukkit-style plugin with when its main class
            references no known platform API; ``"both"`` tags it Bukkit and
            BungeeCord, ``"none"`` leaves it untagged
    """

    def __init__(
            self,
            fallback: str = FALLBACK_BOTH,
            logger: Optional[Callable[[str, str], None]] = None
    ) -> None:
        if fallback not in FALLBACK_POLICIES:
            raise ValueError(
                f"Unknown platform fallback '{fallback}' "
                f"(expected one of: {', '.join(FALLBACK_POLICIES)})"
            )
        self.fallback = fallback
        self.logger = logger or (lambda msg, level: None)

    def log(self, message: str, level: str = "info") -> None:
        self.logger(message, level)

    def extract(self, archive_path: Union[str, Path]) -> List[ArchiveRecord]:
        """Extract every recognized platform descriptor from an archive.

        Records are returned in probe order: Velocity, BungeeCord, then the
        common Bukkit/Folia descriptor. An archive with no recognized
        descriptor yields an empty list.

        Args:
            archive_path: Path to the archive

        Returns:
            Extracted records

        Raises:
            ArchiveNotFoundError: If the archive does not exist
            CorruptArchiveError: If the archive cannot be opened; unreadable
                entries only silence the probe that reads them
        """
        records: List[ArchiveRecord] = []
        with JarArchive(archive_path) as archive:
            for probe in (self._probe_velocity, self._probe_bungee, self._probe_common):
                try:
                    record = probe(archive)
                except ArchiveError as e:
                    self.log(f"Error reading descriptor from {archive.path}: {e}", "error")
                    continue
                if record is not None:
                    records.append(record)
        return records

    def _probe_velocity(self, archive: JarArchive) -> Optional[ArchiveRecord]:
        content = archive.read_optional_text(VELOCITY_DESCRIPTOR)
        if content is None:
            return None
        try:
            config = self._parse_json(content, archive.path, VELOCITY_DESCRIPTOR)
            return self._record_from_json(config, archive.path, [PlatformTag.VELOCITY])
        except MalformedDescriptorError as e:
            self.log(str(e), "debug")
            return None

    def _probe_bungee(self, archive: JarArchive) -> Optional[ArchiveRecord]:
        content = archive.read_optional_text(BUNGEE_DESCRIPTOR)
        if content is None:
            return None
        try:
            config = self._parse_yaml(content, archive.path, BUNGEE_DESCRIPTOR)
            return self._record_from_yaml(
                config, archive.path, BUNGEE_DESCRIPTOR, [PlatformTag.BUNGEECORD]
            )
        except MalformedDescriptorError as e:
            self.log(str(e), "debug")
            return None

    def _probe_common(self, archive: JarArchive) -> Optional[ArchiveRecord]:
        content = archive.read_optional_text(COMMON_DESCRIPTOR)
        if content is None:
            return None
        try:
            config = self._parse_yaml(content, archive.path, COMMON_DESCRIPTOR)
            record = self._record_from_yaml(config, archive.path, COMMON_DESCRIPTOR, [])
        except MalformedDescriptorError as e:
            self.log(str(e), "debug")
            return None

        platforms: List[PlatformTag] = []

        main_class = config.get("main")
        if isinstance(main_class, str) and main_class.strip():
            platforms.extend(self._main_class_platforms(archive, main_class))

        if config.get("folia-supported") is True:
            platforms.append(PlatformTag.FOLIA)

        if not platforms:
            return None
        return record.model_copy(update={"platforms": platforms})

    def _main_class_platforms(self, archive: JarArchive, main_class: str) -> List[PlatformTag]:
        try:
            class_content = archive.read_bytes(class_entry_path(main_class))
        except ArchiveError as e:
            self.log(f"Error reading main class file: {e}", "error")
            return []

        platform = detect_platform(class_content)
        if platform is not None:
            return [platform]

        if self.fallback == FALLBACK_BOTH:
            self.log(
                f"Unknown platform plugin from {archive.path}, "
                f"mark it as both Bukkit and BungeeCord.",
                "warning"
            )
            return [PlatformTag.BUKKIT, PlatformTag.BUNGEECORD]

        self.log(f"Unknown platform plugin from {archive.path}, leaving it untagged.", "warning")
        return []

    @staticmethod
    def _parse_yaml(content: str, archive_path: Path, descriptor: str) -> Dict[str, Any]:
        try:
            config = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise MalformedDescriptorError(
                f"Invalid YAML in {descriptor} of {archive_path}: {e}",
                archive_path=str(archive_path),
                descriptor=descriptor,
            ) from e
        if not isinstance(config, dict):
            raise MalformedDescriptorError(
                f"{descriptor} of {archive_path} is not a mapping",
                archive_path=str(archive_path),
                descriptor=descriptor,
            )
        return config

    @staticmethod
    def _parse_json(content: str, archive_path: Path, descriptor: str) -> Dict[str, Any]:
        try:
            config = json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedDescriptorError(
                f"Invalid JSON in {descriptor} of {archive_path}: {e}",
                archive_path=str(archive_path),
                descriptor=descriptor,
            ) from e
        if not isinstance(config, dict):
            raise MalformedDescriptorError(
                f"{descriptor} of {archive_path} is not an object",
                archive_path=str(archive_path),
                descriptor=descriptor,
            )
        return config

    @staticmethod
    def _record_from_yaml(
            config: Dict[str, Any],
            archive_path: Path,
            descriptor: str,
            platforms: Sequence[PlatformTag]
    ) -> ArchiveRecord:
        name = config.get("name")
        if name is None or _ensure_string(name).strip() == "":
            raise MalformedDescriptorError(
                f"{descriptor} of {archive_path} declares no name",
                archive_path=str(archive_path),
                descriptor=descriptor,
            )
        description = config.get("description")
        return ArchiveRecord(
            name=_ensure_string(name),
            version=_ensure_string(config.get("version")),
            description=None if description is None else _ensure_string(description),
            authors=_string_list(config.get("authors")),
            load_before=_string_list(config.get("loadbefore")),
            soft_depend=_string_list(config.get("softdepend")),
            platforms=list(platforms),
        )

    @staticmethod
    def _record_from_json(
            config: Dict[str, Any],
            archive_path: Path,
            platforms: Sequence[PlatformTag]
    ) -> ArchiveRecord:
        plugin_id = config.get("id")
        if plugin_id is None or _ensure_string(plugin_id).strip() == "":
            raise MalformedDescriptorError(
                f"{VELOCITY_DESCRIPTOR} of {archive_path} declares no id",
                archive_path=str(archive_path),
                descriptor=VELOCITY_DESCRIPTOR,
            )
        description = config.get("description")
        return ArchiveRecord(
            name=_ensure_string(plugin_id),
            version=_ensure_string(config.get("version")),
            description=None if description is None else _ensure_string(description),
            authors=_string_list(config.get("authors")),
            load_before=[],
            soft_depend=[],
            platforms=list(platforms),
        )
