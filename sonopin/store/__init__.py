"""Local versioned object store: version counter, refs, snapshots, archives and pins."""

from .archive import ArchiveReader, UnpackedArchive, pack, pack_bytes, read_manifest, unpack
from .pin import history, init_project, pin
from .refs import is_repo, parse_version, read_version, write_version
from .snapshot import compute_diffs, take_snapshot

__all__ = [
    "ArchiveReader",
    "UnpackedArchive",
    "pack",
    "pack_bytes",
    "read_manifest",
    "unpack",
    "history",
    "init_project",
    "pin",
    "is_repo",
    "parse_version",
    "read_version",
    "write_version",
    "compute_diffs",
    "take_snapshot",
]
