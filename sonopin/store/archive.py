"""
Pin archive codec.

A pin archive is a gzip'd tar stream holding exactly:

    message        free-text pin message
    diffs.json     the version's diff manifest
    files/{path}   full contents of every file added in this version

Entries are written in that order with a fixed mode. Readers can either
unpack everything or scan sequentially for a single files/ entry and stream
it without extracting the rest of the archive.
"""

import io
import logging
import os
import tarfile
import tempfile
import time
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from sonopin.shared.constants import (
    ARCHIVE_MESSAGE_ENTRY,
    ARCHIVE_DIFFS_ENTRY,
    ARCHIVE_FILES_PREFIX,
    ARCHIVE_ENTRY_MODE,
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
)
from sonopin.shared.errors import ArchiveEntryNotFound, IOFailure
from sonopin.shared.models import Diff, diffs_to_json, diffs_from_json

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes, BinaryIO]

# Errors a truncated or corrupt gzip/tar stream can surface as
_READ_ERRORS = (tarfile.TarError, EOFError, zlib.error, OSError)


@dataclass
class UnpackedArchive:
    """Fully decoded pin archive."""
    message: str
    diffs: List[Diff]
    files: Dict[str, bytes] = field(default_factory=dict)


def _add_bytes(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(content)
    info.mode = ARCHIVE_ENTRY_MODE
    info.mtime = int(time.time())
    tar.addfile(info, io.BytesIO(content))


def _add_file(tar: tarfile.TarFile, rel_path: str, source_path: Path) -> None:
    st = os.stat(source_path)
    info = tarfile.TarInfo(name=ARCHIVE_FILES_PREFIX + rel_path)
    info.size = st.st_size
    info.mode = ARCHIVE_ENTRY_MODE
    info.mtime = int(st.st_mtime)
    with open(source_path, 'rb') as f:
        tar.addfile(info, f)


def pack(fileobj: BinaryIO, message: str, diffs: List[Diff],
         files: Iterable[Tuple[str, Union[str, Path]]]) -> None:
    """
    Write a pin archive to an open binary file.

    Args:
        fileobj: Destination, left open
        message: Pin message
        diffs: Diff manifest, serialized in the given order
        files: (relative path, source path) pairs of the added files

    Raises:
        IOFailure: if a source file cannot be read or the stream written
    """
    try:
        with tarfile.open(fileobj=fileobj, mode="w:gz") as tar:
            _add_bytes(tar, ARCHIVE_MESSAGE_ENTRY, message.encode("utf-8"))
            _add_bytes(tar, ARCHIVE_DIFFS_ENTRY, diffs_to_json(diffs).encode("utf-8"))
            for rel_path, source_path in files:
                _add_file(tar, rel_path, Path(source_path))
    except (OSError, tarfile.TarError) as e:
        raise IOFailure(f"Failed to write archive: {e}") from e


def pack_bytes(message: str, diffs: List[Diff],
               files: Iterable[Tuple[str, Union[str, Path]]]) -> bytes:
    """Pack an archive in memory and return its bytes."""
    buf = io.BytesIO()
    pack(buf, message, diffs, files)
    return buf.getvalue()


def write_archive(dest: Union[str, Path], message: str, diffs: List[Diff],
                  files: Iterable[Tuple[str, Union[str, Path]]]) -> Path:
    """
    Pack an archive to a path.

    The archive is written to a temporary file next to the destination and
    renamed into place, so a failed pack never leaves a half-written archive.
    """
    dest = Path(dest)
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(dest.parent), prefix=f".{dest.name}.")
    except OSError as e:
        raise IOFailure(f"Could not create {dest}: {e}") from e

    try:
        with os.fdopen(fd, 'wb') as f:
            pack(f, message, diffs, files)
        os.replace(tmp, dest)
    except OSError as e:
        raise IOFailure(f"Could not write {dest}: {e}") from e
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)

    logger.debug("Archive written to %s", dest)
    return dest


def _open_source(source: Source) -> Tuple[BinaryIO, bool]:
    """Return (binary file, owned) for a path, raw bytes or an open file."""
    if isinstance(source, (bytes, bytearray)):
        return io.BytesIO(source), True
    if isinstance(source, (str, Path)):
        try:
            return open(source, 'rb'), True
        except FileNotFoundError as e:
            raise ArchiveEntryNotFound(f"Archive not found: {source}") from e
        except OSError as e:
            raise IOFailure(f"Could not open archive {source}: {e}") from e
    return source, False


def unpack(source: Source) -> UnpackedArchive:
    """
    Decode a whole archive.

    Raises:
        ArchiveEntryNotFound: if the archive is corrupt or lacks message/diffs.json
    """
    fh, owned = _open_source(source)
    message: Optional[str] = None
    diffs: Optional[List[Diff]] = None
    files: Dict[str, bytes] = {}
    try:
        with tarfile.open(fileobj=fh, mode="r|gz") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                data = tar.extractfile(member).read()
                if member.name == ARCHIVE_MESSAGE_ENTRY:
                    message = data.decode("utf-8")
                elif member.name == ARCHIVE_DIFFS_ENTRY:
                    diffs = diffs_from_json(data.decode("utf-8"))
                elif member.name.startswith(ARCHIVE_FILES_PREFIX):
                    files[member.name[len(ARCHIVE_FILES_PREFIX):]] = data
    except _READ_ERRORS as e:
        raise ArchiveEntryNotFound(f"Archive is truncated or corrupt: {e}") from e
    except (ValueError, KeyError) as e:
        raise ArchiveEntryNotFound(f"Archive manifest is invalid: {e}") from e
    finally:
        if owned:
            fh.close()

    if message is None:
        raise ArchiveEntryNotFound(f"Archive has no {ARCHIVE_MESSAGE_ENTRY} entry")
    if diffs is None:
        raise ArchiveEntryNotFound(f"Archive has no {ARCHIVE_DIFFS_ENTRY} entry")
    return UnpackedArchive(message=message, diffs=diffs, files=files)


def read_manifest(source: Source) -> Tuple[str, List[Diff]]:
    """
    Read only the message and diff manifest of an archive.

    Both entries precede files/, so the scan stops before any file content is
    decompressed.
    """
    fh, owned = _open_source(source)
    message: Optional[str] = None
    diffs: Optional[List[Diff]] = None
    try:
        with tarfile.open(fileobj=fh, mode="r|gz") as tar:
            for member in tar:
                if member.name == ARCHIVE_MESSAGE_ENTRY:
                    message = tar.extractfile(member).read().decode("utf-8")
                elif member.name == ARCHIVE_DIFFS_ENTRY:
                    diffs = diffs_from_json(tar.extractfile(member).read().decode("utf-8"))
                if message is not None and diffs is not None:
                    return message, diffs
    except _READ_ERRORS as e:
        raise ArchiveEntryNotFound(f"Archive is truncated or corrupt: {e}") from e
    except (ValueError, KeyError) as e:
        raise ArchiveEntryNotFound(f"Archive manifest is invalid: {e}") from e
    finally:
        if owned:
            fh.close()
    raise ArchiveEntryNotFound("Archive has no message or diff manifest")


class ArchiveReader:
    """
    Sequential reader for a single files/ entry.

    The archive is decompressed as a stream; entries before the match are
    skipped and nothing after it is read.

    Usage:
        with ArchiveReader(path) as reader:
            stream = reader.open_file("drums/kick.wav")
            shutil.copyfileobj(stream, out)
    """

    def __init__(self, source: Source):
        self._fh, self._owned = _open_source(source)
        self._tar: Optional[tarfile.TarFile] = None

    def open_file(self, rel_path: str) -> BinaryIO:
        """
        Scan for files/{rel_path} and return a stream over its bytes.

        The stream stays valid until the reader is closed.

        Raises:
            ArchiveEntryNotFound: if the scan reaches the end without a match
                or the archive is corrupt
        """
        target = ARCHIVE_FILES_PREFIX + rel_path.lstrip("/")
        try:
            self._tar = tarfile.open(fileobj=self._fh, mode="r|gz")
            for member in self._tar:
                if member.isfile() and member.name == target:
                    return self._tar.extractfile(member)
        except _READ_ERRORS as e:
            raise ArchiveEntryNotFound(f"Archive is truncated or corrupt: {e}") from e
        raise ArchiveEntryNotFound(f"File not found in archive: {rel_path}")

    def close(self) -> None:
        if self._tar is not None:
            self._tar.close()
            self._tar = None
        if self._owned:
            self._fh.close()

    def __enter__(self) -> 'ArchiveReader':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def iter_file_chunks(source: Source, rel_path: str,
                     chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the bytes of one archived file in chunks."""
    with ArchiveReader(source) as reader:
        stream = reader.open_file(rel_path)
        for chunk in iter(lambda: stream.read(chunk_size), b''):
            yield chunk


def extract_files(source: Source, dest_root: Union[str, Path]) -> List[Path]:
    """
    Write every files/ entry of an archive under dest_root.

    Entries whose path would land outside dest_root are refused.

    Returns:
        Paths written, in archive order
    """
    dest_root = Path(dest_root).resolve()
    fh, owned = _open_source(source)
    written: List[Path] = []
    try:
        with tarfile.open(fileobj=fh, mode="r|gz") as tar:
            for member in tar:
                if not member.isfile() or not member.name.startswith(ARCHIVE_FILES_PREFIX):
                    continue
                rel_path = member.name[len(ARCHIVE_FILES_PREFIX):]
                target = (dest_root / rel_path).resolve()
                if dest_root not in target.parents:
                    raise IOFailure(f"Refusing to extract {member.name} outside {dest_root}")
                target.parent.mkdir(parents=True, exist_ok=True)
                stream = tar.extractfile(member)
                with open(target, 'wb') as out:
                    for chunk in iter(lambda: stream.read(DEFAULT_DOWNLOAD_CHUNK_SIZE), b''):
                        out.write(chunk)
                written.append(target)
    except IOFailure:
        raise
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise ArchiveEntryNotFound(f"Archive is truncated or corrupt: {e}") from e
    except OSError as e:
        raise IOFailure(f"Could not extract archive: {e}") from e
    finally:
        if owned:
            fh.close()
    return written
