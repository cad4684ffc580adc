"""
Server-side object store.
Keeps every project's pin archives on the local filesystem:

    {data_dir}/projects/{project}/objects/{version}/pin.tar.gz
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Dict, List, Union

from sonopin.shared.constants import (
    ARCHIVE_FILENAME,
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    OBJECTS_DIR_NAME,
    PROJECTS_DIR_NAME,
)
from sonopin.shared.errors import Conflict, IOFailure, InvalidFormat, NotFound
from sonopin.store.refs import parse_version, sort_versions

logger = logging.getLogger(__name__)


def validate_segment(value: str, what: str) -> str:
    """
    Reject names that could escape their directory.

    Raises:
        InvalidFormat: on an empty name, a path separator or a dot name
    """
    if not value or not value.strip():
        raise InvalidFormat(f"Missing {what}")
    if '/' in value or '\\' in value or value in ('.', '..') or '\x00' in value:
        raise InvalidFormat(f"Invalid {what}: {value!r}")
    return value


class ObjectStore:
    """
    Write-once storage for pin archives.

    A pin is claimed by creating its version directory with os.mkdir, which
    fails if the directory exists, so two concurrent uploads of the same
    version cannot both succeed. A version only counts as pinned once its
    archive has been renamed into place.

    Version directories left without an archive by a process that died
    mid-upload are removed when the store is opened.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir).expanduser().absolute()
        self.projects_dir = self.data_dir / PROJECTS_DIR_NAME
        self.projects_dir.mkdir(parents=True, exist_ok=True)
        self._remove_incomplete_pins()

    def _remove_incomplete_pins(self) -> None:
        for version_dir in self.projects_dir.glob(f"*/{OBJECTS_DIR_NAME}/*"):
            if version_dir.is_dir() and not (version_dir / ARCHIVE_FILENAME).is_file():
                logger.warning("Removing incomplete pin %s@%s",
                               version_dir.parent.parent.name, version_dir.name)
                shutil.rmtree(version_dir, ignore_errors=True)

    def _project_path(self, project: str) -> Path:
        return self.projects_dir / validate_segment(project, "project name")

    def _existing_project(self, project: str) -> Path:
        path = self._project_path(project)
        if not path.is_dir():
            raise NotFound(f"Project not found: {project}")
        return path

    def list_projects(self) -> List[str]:
        return sorted(p.name for p in self.projects_dir.iterdir() if p.is_dir())

    def create_project(self, project: str) -> Path:
        path = self._project_path(project)
        try:
            os.mkdir(path)
        except FileExistsError as e:
            raise Conflict("Project already exists") from e
        except OSError as e:
            raise IOFailure(f"Could not create project {project}: {e}") from e
        (path / OBJECTS_DIR_NAME).mkdir(exist_ok=True)
        logger.info("Created project %s", project)
        return path

    def project_info(self, project: str) -> Dict[str, str]:
        path = self._existing_project(project)
        modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return {
            "project": project,
            "lastModified": modified.isoformat().replace("+00:00", "Z"),
        }

    def delete_project(self, project: str) -> None:
        path = self._existing_project(project)
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise IOFailure(f"Could not delete project {project}: {e}") from e
        logger.info("Deleted project %s", project)

    def list_pins(self, project: str) -> List[str]:
        """Versions of a project with a stored archive, sorted by (major, minor)."""
        objects = self._existing_project(project) / OBJECTS_DIR_NAME
        if not objects.is_dir():
            return []
        return sort_versions(p.name for p in objects.iterdir() if (p / ARCHIVE_FILENAME).is_file())

    def archive_path(self, project: str, version: str) -> Path:
        """
        Path of an existing pin archive.

        Raises:
            NotFound: if the project or the pin does not exist
        """
        validate_segment(version, "version")
        path = self._existing_project(project) / OBJECTS_DIR_NAME / version / ARCHIVE_FILENAME
        if not path.is_file():
            raise NotFound(f"Pin not found: {project}@{version}")
        return path

    def save_pin(self, project: str, version: str, stream: BinaryIO) -> Path:
        """
        Store an uploaded archive for a new version.

        Unknown projects are created on first upload. The bytes are streamed
        to a temporary file and renamed into place; if anything fails the
        version directory is removed again.

        Raises:
            InvalidFormat: if the version is not "major.minor"
            Conflict: if the version was already pinned
        """
        version = str(parse_version(validate_segment(version, "version")))
        project_path = self._project_path(project)
        objects = project_path / OBJECTS_DIR_NAME
        try:
            objects.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Could not create project {project}: {e}") from e

        version_dir = objects / version
        try:
            os.mkdir(version_dir)
        except FileExistsError as e:
            raise Conflict("Pin already exists") from e
        except OSError as e:
            raise IOFailure(f"Could not create {version_dir}: {e}") from e

        dest = version_dir / ARCHIVE_FILENAME
        try:
            fd, tmp = tempfile.mkstemp(dir=str(version_dir), prefix=f".{ARCHIVE_FILENAME}.")
            with os.fdopen(fd, 'wb') as f:
                for chunk in iter(lambda: stream.read(DEFAULT_DOWNLOAD_CHUNK_SIZE), b''):
                    f.write(chunk)
            os.replace(tmp, dest)
        except Exception as e:
            shutil.rmtree(version_dir, ignore_errors=True)
            if isinstance(e, OSError):
                raise IOFailure(f"Could not store pin {project}@{version}: {e}") from e
            raise

        logger.info("Stored pin %s@%s (%d bytes)", project, version, dest.stat().st_size)
        return dest
