"""
HTTP client for the sync server.

Pushes pin archives with a multipart upload and fetches whole archives or
single archived files back into the local store.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

import requests

from sonopin.shared.constants import (
    API_PREFIX,
    ARCHIVE_FILENAME,
    CHECKOUTS_DIR_NAME,
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    DEFAULT_NETWORK_TIMEOUT,
)
from sonopin.shared.errors import (
    Conflict,
    IOFailure,
    NotFound,
    RemoteError,
    UploadRejected,
)
from sonopin.shared.models import RemoteConfig, Version
from sonopin.store.archive import extract_files
from sonopin.store.refs import parse_version, store_path, version_path

logger = logging.getLogger(__name__)

VersionLike = Union[str, Version]


def _as_version(version: VersionLike) -> Version:
    return version if isinstance(version, Version) else parse_version(version)


class SyncClient:
    """Talks to one project on one sync server."""

    def __init__(self, remote: RemoteConfig, session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_NETWORK_TIMEOUT):
        self.remote = remote
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, *parts: str) -> str:
        return "/".join([self.remote.base_url + API_PREFIX] + list(parts))

    def _project_url(self, *parts: str) -> str:
        return self._url("projects", self.remote.project, *parts)

    def push(self, root: Union[str, Path], version: VersionLike) -> None:
        """
        Upload a local pin archive.

        Raises:
            NotFound: if the pin has no local archive
            UploadRejected: if the server answers anything but 201 Created
            RemoteError: if the server cannot be reached
        """
        version = _as_version(version)
        archive_path = version_path(root, version) / ARCHIVE_FILENAME
        if not archive_path.is_file():
            raise NotFound(f"No local archive for version {version}: {archive_path}")

        meta = json.dumps({"version": str(version)})
        logger.info("Pushing %s to %s", version, self._project_url("pins"))
        try:
            with open(archive_path, 'rb') as f:
                response = self.session.post(
                    self._project_url("pins"),
                    data={"meta": meta},
                    files={"file": (ARCHIVE_FILENAME, f, "application/gzip")},
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise RemoteError(f"Request failed: {e}") from e
        except OSError as e:
            raise IOFailure(f"Could not read {archive_path}: {e}") from e

        if response.status_code != 201:
            raise UploadRejected(
                f"Upload failed: {response.status_code} {response.reason}\n{response.text}",
                status_code=response.status_code,
                body=response.text,
            )

    def _get(self, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RemoteError(f"Request failed: {e}") from e

    def _download(self, response: requests.Response, dest: Path) -> Path:
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(dest.parent), prefix=f".{dest.name}.")
        except OSError as e:
            raise IOFailure(f"Could not create {dest}: {e}") from e
        try:
            with os.fdopen(fd, 'wb') as out:
                for chunk in response.iter_content(chunk_size=DEFAULT_DOWNLOAD_CHUNK_SIZE):
                    out.write(chunk)
            os.replace(tmp, dest)
        except requests.RequestException as e:
            raise RemoteError(f"Download interrupted: {e}") from e
        except OSError as e:
            raise IOFailure(f"Could not write {dest}: {e}") from e
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)
        return dest

    def checkout_path(self, root: Union[str, Path], version: Version) -> Path:
        return (store_path(root) / CHECKOUTS_DIR_NAME / self.remote.project
                / "versions" / str(version) / f"{version}.tar.gz")

    def checkout(self, root: Union[str, Path], version: VersionLike,
                 extract: bool = False) -> Path:
        """
        Download a pin archive into the local store.

        Args:
            root: Project root
            version: Version to fetch
            extract: Also write the pin's added files into the working tree

        Returns:
            Path of the downloaded archive

        Raises:
            RemoteError: on any non-200 answer or transport failure
        """
        version = _as_version(version)
        response = self._get(self._project_url("pins", str(version)), stream=True)
        with response:
            if response.status_code != 200:
                raise RemoteError(
                    f"Server returned error: {response.status_code} {response.reason}",
                    status_code=response.status_code,
                )
            dest = self._download(response, self.checkout_path(root, version))

        logger.info("Checked out %s of %s to %s", version, self.remote.project, dest)
        if extract:
            extract_files(dest, root)
        return dest

    def fetch_file(self, version: VersionLike, name: str, dest: Union[str, Path]) -> Path:
        """
        Download a single file out of a remote pin archive.

        Raises:
            NotFound: if the pin or the file is not on the server
            RemoteError: on any other failure
        """
        version = _as_version(version)
        response = self._get(self._project_url("pins", str(version), "file"),
                             params={"file": name}, stream=True)
        with response:
            if response.status_code == 404:
                raise NotFound(f"{name} not found in {self.remote.project} {version}")
            if response.status_code != 200:
                raise RemoteError(
                    f"Server returned error: {response.status_code} {response.reason}",
                    status_code=response.status_code,
                )
            return self._download(response, Path(dest))

    def list_pins(self) -> List[str]:
        """Versions stored on the server, ascending."""
        response = self._get(self._project_url("pins"))
        if response.status_code == 404:
            raise NotFound(f"Project {self.remote.project} not found on server")
        if response.status_code != 200:
            raise RemoteError(f"Server returned error: {response.status_code}",
                              status_code=response.status_code)
        return response.json()

    def list_projects(self) -> List[str]:
        response = self._get(self._url("projects"))
        if response.status_code != 200:
            raise RemoteError(f"Server returned error: {response.status_code}",
                              status_code=response.status_code)
        return response.json()

    def create_project(self) -> None:
        """Register the configured project on the server."""
        try:
            response = self.session.post(self._url("projects"),
                                         json={"name": self.remote.project},
                                         timeout=self.timeout)
        except requests.RequestException as e:
            raise RemoteError(f"Request failed: {e}") from e
        if response.status_code == 409:
            raise Conflict(f"Project {self.remote.project} already exists")
        if response.status_code != 201:
            raise RemoteError(f"Server returned error: {response.status_code} {response.text}",
                              status_code=response.status_code)
