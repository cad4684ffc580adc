"""
Data models for versions, diffs, pins and remote configuration.

This module defines the core data structures shared by the local object
store, the pin engine and the sync client/server.
"""

from dataclasses import dataclass, asdict
from typing import List, Dict, Optional, Any
from enum import Enum
import json


@dataclass(frozen=True, order=True)
class Version:
    """
    A pin version, ordered by (major, minor).

    Only the minor component is bumped automatically; major changes are
    manual and break diff lineage (see store.snapshot.previous_refs).
    """
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"

    def bump(self) -> 'Version':
        """Return the next minor version."""
        return Version(self.major, self.minor + 1)

    def previous(self) -> Optional['Version']:
        """Return the immediately preceding minor version, if any."""
        if self.minor <= 0:
            return None
        return Version(self.major, self.minor - 1)


class DiffType(Enum):
    """Kind of change a file underwent between two snapshots."""
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class Diff:
    """One entry of a version's diff manifest."""
    file: str
    type: DiffType

    def to_dict(self) -> Dict[str, str]:
        return {"file": self.file, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Diff':
        return cls(file=data["file"], type=DiffType(data["type"]))


def diffs_to_json(diffs: List[Diff]) -> str:
    """Serialize a diff manifest as an ordered JSON array of {file,type}."""
    return json.dumps([d.to_dict() for d in diffs], indent=2)


def diffs_from_json(json_str: str) -> List[Diff]:
    """Parse a diff manifest; a JSON null manifest reads as empty."""
    data = json.loads(json_str)
    if data is None:
        return []
    return [Diff.from_dict(item) for item in data]


class SyncStatus(Enum):
    """Outcome of pushing a pin to the remote."""
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PinResult:
    """
    Result of a pin.

    A returned result means the pin is durable locally; local failures are
    raised instead. The remote outcome is tracked separately, so a pin that
    could not be pushed still comes back with remote=FAILED.
    """
    version: Version
    diffs: List[Diff]
    remote: SyncStatus = SyncStatus.SKIPPED
    remote_error: Optional[str] = None

    @property
    def added(self) -> List[str]:
        return [d.file for d in self.diffs if d.type is DiffType.ADDED]

    @property
    def removed(self) -> List[str]:
        return [d.file for d in self.diffs if d.type is DiffType.REMOVED]


@dataclass
class PinSummary:
    """One line of local pin history."""
    version: Version
    message: str
    added: int = 0
    removed: int = 0


@dataclass
class RemoteConfig:
    """
    Remote configuration stored in the project's store directory.

    Loaded once per command invocation and passed explicitly to whatever
    needs it.
    """
    server: str
    project: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RemoteConfig':
        """Create RemoteConfig from dictionary, filtering unknown keys."""
        import dataclasses
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RemoteConfig':
        """Deserialize from JSON."""
        return cls.from_dict(json.loads(json_str))

    @property
    def base_url(self) -> str:
        return self.server.rstrip("/")
