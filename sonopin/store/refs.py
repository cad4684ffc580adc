"""
Version counter and refs bookkeeping for the local object store.

Layout under the project root:

    .sonopin/version                     "major.minor"
    .sonopin/objects/{version}/refs      newline-delimited tracked paths
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Iterable, List, Set, Union

from sonopin.shared.constants import (
    STORE_DIR_NAME,
    VERSION_FILENAME,
    OBJECTS_DIR_NAME,
    REFS_FILENAME,
)
from sonopin.shared.errors import CorruptState, InvalidFormat, IOFailure, NotARepo
from sonopin.shared.models import Version

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)$")

PathLike = Union[str, Path]


def parse_version(text: str) -> Version:
    """
    Parse "major.minor" into a Version.

    Surrounding whitespace is ignored. Both parts must be non-negative
    decimal integers.

    Raises:
        InvalidFormat: on anything else
    """
    match = _VERSION_RE.match(text.strip()) if isinstance(text, str) else None
    if not match:
        raise InvalidFormat(f"Invalid version format: {text!r}")
    return Version(int(match.group(1)), int(match.group(2)))


def sort_versions(names: Iterable[str]) -> List[str]:
    """Sort version strings ascending by (major, minor); malformed names are dropped."""
    parsed = []
    for name in names:
        try:
            parsed.append((parse_version(name), name))
        except InvalidFormat:
            logger.warning("Ignoring malformed version entry %r", name)
    return [name for _, name in sorted(parsed)]


def store_path(root: PathLike) -> Path:
    return Path(root) / STORE_DIR_NAME


def objects_path(root: PathLike) -> Path:
    return store_path(root) / OBJECTS_DIR_NAME


def version_path(root: PathLike, version: Version) -> Path:
    return objects_path(root) / str(version)


def is_repo(root: PathLike) -> bool:
    """True if the root holds a store directory. Does not validate its contents."""
    return store_path(root).is_dir()


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, 'w') as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def read_version(root: PathLike) -> Version:
    """
    Read the current version of a project.

    Raises:
        NotARepo: if the root is not a project
        CorruptState: if the version file is missing or malformed
    """
    if not is_repo(root):
        raise NotARepo(f"{Path(root).resolve()} is not a sonopin project")

    path = store_path(root) / VERSION_FILENAME
    try:
        text = path.read_text()
    except FileNotFoundError as e:
        raise CorruptState(f"Version file missing: {path}") from e
    except OSError as e:
        raise IOFailure(f"Could not read {path}: {e}") from e

    try:
        return parse_version(text)
    except InvalidFormat as e:
        raise CorruptState(f"Version file {path} is corrupt: {text.strip()!r}") from e


def write_version(root: PathLike, version: Version) -> None:
    """Atomically overwrite the stored version."""
    path = store_path(root) / VERSION_FILENAME
    try:
        _atomic_write_text(path, str(version))
    except OSError as e:
        raise IOFailure(f"Could not write {path}: {e}") from e
    logger.debug("Version set to %s", version)


def read_refs(root: PathLike, version: Version) -> Set[str]:
    """Tracked paths recorded for a version; a missing refs file reads as empty."""
    path = version_path(root, version) / REFS_FILENAME
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return set()
    except UnicodeDecodeError as e:
        raise CorruptState(f"Refs file {path} is not valid UTF-8") from e
    except OSError as e:
        raise IOFailure(f"Could not read {path}: {e}") from e
    return {line for line in text.split("\n") if line}


def write_refs(root: PathLike, version: Version, paths: Iterable[str]) -> Path:
    """Write the refs file for a version, overwriting any previous one."""
    path = version_path(root, version) / REFS_FILENAME
    try:
        _atomic_write_text(path, "".join(f"{p}\n" for p in sorted(paths)))
    except OSError as e:
        raise IOFailure(f"Could not write {path}: {e}") from e
    return path


def list_local_versions(root: PathLike) -> List[Version]:
    """Versions with an object directory, ascending."""
    objects = objects_path(root)
    if not objects.is_dir():
        return []
    names = [entry.name for entry in objects.iterdir() if entry.is_dir()]
    return [parse_version(name) for name in sort_versions(names)]
