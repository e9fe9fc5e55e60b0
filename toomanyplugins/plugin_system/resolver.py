"""Search over library indexes and "latest version" resolution.

Version strings in the wild are rarely valid semantic versions, so ordering
first coerces each string to ``major.minor.patch`` and compares those; ties
and uncoercible strings fall back to ranking snapshot builds below releases.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import semver

from toomanyplugins.plugin_system.models import IndexEntry, Library, PlatformTag
from toomanyplugins.utils.exceptions import PluginNotFoundError, VersionNotFoundError

DEFAULT_SNAPSHOT_MARKER = "SNAPSHOT"

TIEBREAK_STABLE = "stable"
TIEBREAK_LEXICOGRAPHIC = "lexicographic"
TIEBREAK_POLICIES = (TIEBREAK_STABLE, TIEBREAK_LEXICOGRAPHIC)

_COERCE_RE = re.compile(
    r"(?:^|[^\d])(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?(?:$|[^\d])"
)


def coerce_version(version: str) -> Optional[semver.Version]:
    """Coerce a free-form version string into a semantic version.

    The first run of ``major[.minor[.patch]]`` digits is used; missing
    components default to zero and any prerelease or build text is dropped,
    so ``"v2.0-SNAPSHOT"`` becomes ``2.0.0``.

    Returns:
        The coerced version, or None if the string contains no number
    """
    match = _COERCE_RE.search(version or "")
    if match is None:
        return None
    major, minor, patch = match.groups()
    return semver.Version(int(major), int(minor or 0), int(patch or 0))


def compare_versions(
        a: str,
        b: str,
        snapshot_marker: str = DEFAULT_SNAPSHOT_MARKER,
        tiebreak: str = TIEBREAK_STABLE
) -> int:
    """Compare two version strings, newest first.

    Returns:
        A negative number if ``a`` is newer than ``b``, positive if older,
        zero if their relative order is left to the input order
    """
    version_a = coerce_version(a)
    version_b = coerce_version(b)
    if version_a is not None and version_b is not None:
        result = version_b.compare(version_a)
        if result != 0:
            return result

    a_is_snapshot = snapshot_marker in a
    b_is_snapshot = snapshot_marker in b
    if a_is_snapshot and not b_is_snapshot:
        return 1
    if b_is_snapshot and not a_is_snapshot:
        return -1

    if tiebreak == TIEBREAK_LEXICOGRAPHIC:
        return (a < b) - (a > b)
    return 0


@dataclass
class SearchResult:
    """An index entry together with the library that holds it."""

    library_id: str
    entry: IndexEntry


class PluginResolver:
    """Filters library indexes and picks the newest version of a plugin.

    Attributes:
        library_manager: Source of libraries (``get_library`` and
            ``get_all_libraries``)
        snapshot_marker: Substring marking a pre-release build
        tiebreak: Ordering for versions that compare equal, ``"stable"``
            keeps input order and ``"lexicographic"`` makes the order total
    """

    def __init__(
            self,
            library_manager: Any,
            snapshot_marker: str = DEFAULT_SNAPSHOT_MARKER,
            tiebreak: str = TIEBREAK_STABLE
    ) -> None:
        if tiebreak not in TIEBREAK_POLICIES:
            raise ValueError(
                f"Unknown version tie-break '{tiebreak}' "
                f"(expected one of: {', '.join(TIEBREAK_POLICIES)})"
            )
        self.library_manager = library_manager
        self.snapshot_marker = snapshot_marker
        self.tiebreak = tiebreak

    def compare_versions(self, a: str, b: str) -> int:
        return compare_versions(a, b, self.snapshot_marker, self.tiebreak)

    def sort_versions(self, versions: Iterable[str]) -> List[str]:
        """Sort version strings from newest to oldest."""
        return sorted(versions, key=functools.cmp_to_key(self.compare_versions))

    def find(
            self,
            name: Optional[str] = None,
            version: Optional[str] = None,
            platform: Optional[Union[PlatformTag, str]] = None,
            library_id: Optional[str] = None,
            latest: bool = False
    ) -> List[SearchResult]:
        """Search the indexed plugins.

        All filters are optional and combine with AND.

        Args:
            name: Case-insensitive substring of the plugin name
            version: Exact version string
            platform: Platform the entry must support
            library_id: Restrict the search to one library
            latest: Keep only the newest version of each plugin; without a
                platform filter, same-named entries with disjoint platform sets
                are kept apart

        Returns:
            Matching entries in library and index order

        Raises:
            LibraryNotFoundError: If ``library_id`` is unknown
        """
        libraries = self._libraries(library_id)
        wanted_platform = PlatformTag.parse(platform) if platform is not None else None
        query = name.lower() if name else None

        results = [
            SearchResult(library_id=lib_id, entry=entry)
            for lib_id, library in libraries.items()
            for entry in library.entries
            if self._matches(entry, query, version, wanted_platform)
        ]

        if latest:
            results = self.latest_only(results, split_platforms=wanted_platform is None)
        return results

    def latest_only(self, results: List[SearchResult], split_platforms: bool = True) -> List[SearchResult]:
        """Reduce results to the newest entry per plugin name.

        With ``split_platforms`` same-named entries stay apart when their
        platform sets are disjoint; entries sharing any platform (directly or
        through another entry) compete with each other.
        """
        clusters: List[Tuple[str, set, List[int]]] = []
        for index, result in enumerate(results):
            name = result.entry.name
            platforms = set(result.entry.record.platform_key()) if split_platforms else {None}
            overlapping = [c for c in clusters if c[0] == name and c[1] & platforms]
            merged = (name, set(platforms), [index])
            for cluster in overlapping:
                merged[1].update(cluster[1])
                merged[2].extend(cluster[2])
            clusters = [c for c in clusters if not any(c is o for o in overlapping)]
            clusters.append(merged)
            clusters.sort(key=lambda c: min(c[2]))
        return [
            self.newest([results[i] for i in sorted(members)])
            for _, _, members in clusters
        ]

    def newest(self, results: List[SearchResult]) -> SearchResult:
        ordered = sorted(
            results,
            key=functools.cmp_to_key(
                lambda x, y: self.compare_versions(x.entry.version, y.entry.version)
            ),
        )
        return ordered[0]

    def select(
            self,
            name: str,
            version: Optional[str] = None,
            latest: bool = False,
            platform: Optional[Union[PlatformTag, str]] = None,
            library_id: Optional[str] = None
    ) -> SearchResult:
        """Pick the single entry to deploy for a plugin name.

        The name must match exactly (case-insensitively).

        Args:
            name: Plugin name
            version: Exact version to pick
            latest: Pick the newest version instead
            platform: Platform the entry must support
            library_id: Restrict the search to one library

        Returns:
            The chosen entry

        Raises:
            ValueError: If neither ``version`` nor ``latest`` is given
            PluginNotFoundError: If no entry has that name
            VersionNotFoundError: If no entry has the requested version
        """
        if not version and not latest:
            raise ValueError("Either version or latest must be specified")

        results = [
            result for result in self.find(name=name, platform=platform, library_id=library_id)
            if result.entry.name.lower() == name.lower()
        ]
        if not results:
            raise PluginNotFoundError(f"Plugin not found: {name}", plugin_name=name)

        if version:
            for result in results:
                if result.entry.version == version:
                    return result
            raise VersionNotFoundError(
                f"Version {version} of {name} not found", plugin_name=name, version=version
            )

        return self.newest(results)

    def _libraries(self, library_id: Optional[str]) -> Dict[str, Library]:
        if library_id is not None:
            return {library_id: self.library_manager.get_library(library_id)}
        return self.library_manager.get_all_libraries()

    @staticmethod
    def _matches(
            entry: IndexEntry,
            query: Optional[str],
            version: Optional[str],
            platform: Optional[PlatformTag]
    ) -> bool:
        if query is not None and query not in entry.name.lower():
            return False
        if version is not None and entry.version != version:
            return False
        if platform is not None and not entry.record.supports(platform):
            return False
        return True
