"""Data model for indexed plugin archives.

Descriptors are parsed into untyped mappings at the extraction boundary and
projected into these models; nothing past the extractor sees raw YAML/JSON.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Iterable, List, Optional

import pydantic
from pydantic import Field, field_validator


class PlatformTag(str, enum.Enum):
    """Server platforms an archive can be compatible with.

    ``FOLIA`` is additive: a Bukkit plugin that declares Folia support carries
    both tags.
    """

    BUNGEECORD = "BungeeCord"
    BUKKIT = "Bukkit"
    VELOCITY = "Velocity"
    FOLIA = "Folia"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> PlatformTag:
        """Parse a platform name case-insensitively.

        Raises:
            ValueError: If the value does not name a supported platform
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for platform in cls:
            if platform.value.lower() == text:
                return platform
        supported = ", ".join(p.value for p in cls)
        raise ValueError(f"Unknown platform '{value}' (supported: {supported})")


def _unique(items: Iterable[Any]) -> List[Any]:
    seen: List[Any] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


class ArchiveRecord(pydantic.BaseModel):
    """Metadata for one platform descriptor found inside an archive."""

    name: str
    version: str
    description: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    load_before: List[str] = Field(default_factory=list)
    soft_depend: List[str] = Field(default_factory=list)
    platforms: List[PlatformTag] = Field(default_factory=list)

    @field_validator("authors", "load_before", "soft_depend", mode="before")
    @classmethod
    def coerce_string_list(cls, v: Any) -> List[str]:
        if not isinstance(v, (list, tuple)):
            return []
        return [str(item) for item in v if item is not None]

    @field_validator("platforms", mode="before")
    @classmethod
    def coerce_platforms(cls, v: Any) -> List[PlatformTag]:
        if v is None:
            return []
        return _unique(PlatformTag.parse(item) for item in v)

    def supports(self, platform: PlatformTag) -> bool:
        return platform in self.platforms

    def platform_key(self) -> frozenset:
        return frozenset(self.platforms)

    def platform_label(self) -> str:
        return ", ".join(str(p) for p in self.platforms)


class IndexEntry(pydantic.BaseModel):
    """One record of one archive as known to an index.

    An archive that yields several records is stored as several entries
    sharing ``hash`` and ``path``.
    """

    hash: str
    path: str
    record: ArchiveRecord

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def version(self) -> str:
        return self.record.version

    @property
    def platforms(self) -> List[PlatformTag]:
        return self.record.platforms


class Library(pydantic.BaseModel):
    """A directory of archives plus its persisted index."""

    id: str
    path: str
    entries: List[IndexEntry] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Library:
        return cls.model_validate(data)


class Server(pydantic.BaseModel):
    """A deployment target directory and its declared platform."""

    id: str
    path: str
    platform: PlatformTag

    @field_validator("platform", mode="before")
    @classmethod
    def coerce_platform(cls, v: Any) -> PlatformTag:
        return PlatformTag.parse(v)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Server:
        return cls.model_validate(data)


class CacheEntry(pydantic.BaseModel):
    """Records previously extracted from an archive with the given hash."""

    hash: str
    records: List[ArchiveRecord] = Field(default_factory=list)
