"""
Directory snapshots and file-set diffs between versions.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Set, Union

from sonopin.shared.constants import STORE_DIR_NAME, TRACKED_AUDIO_EXTENSION
from sonopin.shared.models import Diff, DiffType, Version
from .refs import read_refs, version_path

logger = logging.getLogger(__name__)


def is_tracked(path: Union[str, Path]) -> bool:
    """Check whether a file has the tracked audio extension."""
    return Path(path).suffix.lower() == TRACKED_AUDIO_EXTENSION


def take_snapshot(root: Union[str, Path]) -> Set[str]:
    """
    Collect every tracked audio file under root.

    Paths are relative to root, with forward slashes. The store directory is
    never descended into.
    """
    root_path = Path(root)
    snapshot: Set[str] = set()

    for dirpath, dirnames, filenames in os.walk(root_path):
        if Path(dirpath) == root_path and STORE_DIR_NAME in dirnames:
            dirnames.remove(STORE_DIR_NAME)
        for filename in filenames:
            if is_tracked(filename):
                rel_path = (Path(dirpath) / filename).relative_to(root_path)
                snapshot.add(rel_path.as_posix())

    return snapshot


def previous_refs(root: Union[str, Path], version: Version) -> Set[str]:
    """
    Refs of the version immediately preceding `version`.

    Only (major, minor - 1) is consulted. The first version of a major has no
    predecessor, and a missing predecessor record is treated as an empty set,
    so every tracked file of `version` is recorded as added again. Lineage
    across skipped versions or a major bump is not tracked.
    """
    prev = version.previous()
    if prev is None or version.minor == 1:
        return set()

    if not version_path(root, prev).is_dir():
        logger.warning(
            "No refs recorded for %s; diffing %s against an empty snapshot", prev, version
        )
        return set()

    return read_refs(root, prev)


def compute_diffs(current: Iterable[str], previous: Iterable[str]) -> List[Diff]:
    """
    Diff two snapshots.

    Every path only in `current` is added, every path only in `previous` is
    removed. The result is sorted by path for presentation; callers must not
    rely on its order.
    """
    current_set = set(current)
    previous_set = set(previous)

    diffs = [Diff(path, DiffType.ADDED) for path in current_set - previous_set]
    diffs.extend(Diff(path, DiffType.REMOVED) for path in previous_set - current_set)
    diffs.sort(key=lambda d: (d.file, d.type.value))
    return diffs
