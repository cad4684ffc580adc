"""
Pin engine: turns the working tree into a new immutable version.

A pin runs these steps in order and stops at the first local failure:

    read version -> bump minor -> write version -> snapshot -> diff against
    the previous refs -> pack archive -> persist refs/archive/manifest -> push

A failed local step raises and leaves the bumped version and any partially
written version directory in place; the next pin moves on to a fresh minor
version rather than reusing it. A failed push does not undo anything and is
reported on the returned PinResult.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from sonopin.shared.config import save_remote_config
from sonopin.shared.constants import (
    ARCHIVE_FILENAME,
    DEFAULT_PIN_MESSAGE,
    DIFFS_FILENAME,
    INITIAL_MAJOR,
    INITIAL_MINOR,
    INITIAL_PIN_MESSAGE,
)
from sonopin.shared.errors import (
    ArchiveEntryNotFound,
    Conflict,
    IOFailure,
    NotARepo,
    SonopinError,
)
from sonopin.shared.models import (
    DiffType,
    PinResult,
    PinSummary,
    RemoteConfig,
    SyncStatus,
    Version,
    diffs_to_json,
)
from .archive import read_manifest, write_archive
from .refs import (
    is_repo,
    list_local_versions,
    read_version,
    store_path,
    version_path,
    write_refs,
    write_version,
)
from .snapshot import compute_diffs, previous_refs, take_snapshot

logger = logging.getLogger(__name__)


def init_project(root: Union[str, Path], name: str, server: str) -> set:
    """
    Turn a directory into a project.

    Creates the store directory, the remote configuration and the baseline
    version 0.1: an empty refs list and an archive with no diffs and no
    files, so the first pin records every tracked file as added.

    Returns:
        The tracked files found in the working tree

    Raises:
        Conflict: if the directory is already a project
    """
    root = Path(root)
    if is_repo(root):
        raise Conflict(f"{root.resolve()} is already a sonopin project")

    try:
        store_path(root).mkdir(parents=True)
    except FileExistsError as e:
        raise Conflict(f"{root.resolve()} is already a sonopin project") from e
    except OSError as e:
        raise IOFailure(f"Could not create store directory: {e}") from e

    save_remote_config(root, RemoteConfig(server=server, project=name))

    version = Version(INITIAL_MAJOR, INITIAL_MINOR)
    write_version(root, version)
    write_refs(root, version, [])
    _write_manifest(version_path(root, version), [])
    write_archive(version_path(root, version) / ARCHIVE_FILENAME,
                  INITIAL_PIN_MESSAGE.format(version=version), [], [])

    snapshot = take_snapshot(root)
    logger.info("Initialized project %s at %s (%d tracked files)", name, root, len(snapshot))
    return snapshot


def _write_manifest(directory: Path, diffs) -> None:
    try:
        directory.mkdir(parents=True, exist_ok=True)
        (directory / DIFFS_FILENAME).write_text(diffs_to_json(diffs))
    except OSError as e:
        raise IOFailure(f"Could not write diff manifest in {directory}: {e}") from e


def pin(root: Union[str, Path], message: Optional[str] = None,
        remote: Optional[RemoteConfig] = None, client=None) -> PinResult:
    """
    Snapshot the working tree into the next minor version.

    Args:
        root: Project root
        message: Pin message; defaults to "Pinned version {version}"
        remote: Remote to push to; no push happens when None and no client
        client: SyncClient to push with (built from `remote` when omitted)

    Returns:
        PinResult with the new version, its diffs and the push outcome

    Raises:
        SonopinError: if any local step fails
    """
    root = Path(root)
    version = read_version(root).bump()
    write_version(root, version)

    snapshot = take_snapshot(root)
    diffs = compute_diffs(snapshot, previous_refs(root, version))
    message = message or DEFAULT_PIN_MESSAGE.format(version=version)

    added = [(d.file, root / d.file) for d in diffs if d.type is DiffType.ADDED]
    directory = version_path(root, version)
    write_archive(directory / ARCHIVE_FILENAME, message, diffs, added)
    write_refs(root, version, snapshot)
    _write_manifest(directory, diffs)

    result = PinResult(version=version, diffs=diffs)
    logger.info("Pinned %s: %d added, %d removed",
                version, len(result.added), len(result.removed))

    if client is None and remote is not None:
        from sonopin.sync.client import SyncClient
        client = SyncClient(remote)

    if client is not None:
        try:
            client.push(root, version)
            result.remote = SyncStatus.OK
        except SonopinError as e:
            logger.warning("Pin %s is stored locally but was not pushed: %s", version, e)
            result.remote = SyncStatus.FAILED
            result.remote_error = str(e)

    return result


def history(root: Union[str, Path], limit: Optional[int] = None) -> List[PinSummary]:
    """
    Local pin history, newest first.

    Versions whose archive is missing or unreadable are skipped with a warning.
    """
    root = Path(root)
    if not is_repo(root):
        raise NotARepo(f"{root.resolve()} is not a sonopin project")
    versions = list(reversed(list_local_versions(root)))
    if limit is not None and limit > 0:
        versions = versions[:limit]

    summaries = []
    for version in versions:
        archive_path = version_path(root, version) / ARCHIVE_FILENAME
        try:
            message, diffs = read_manifest(archive_path)
        except ArchiveEntryNotFound as e:
            logger.warning("Skipping %s: %s", version, e)
            continue
        summaries.append(PinSummary(
            version=version,
            message=message,
            added=sum(1 for d in diffs if d.type is DiffType.ADDED),
            removed=sum(1 for d in diffs if d.type is DiffType.REMOVED),
        ))
    return summaries
