"""
Exception hierarchy for sonopin.

Every failure the object store, the sample codec or the sync layer can hit is
raised as a subclass of SonopinError. Each class carries the HTTP status the
sync server answers with when the error escapes a request handler.
"""

from typing import Optional


class SonopinError(Exception):
    """Base exception for all sonopin errors."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotARepo(SonopinError):
    """The directory has no store marker directory."""
    http_status = 400


class CorruptState(SonopinError):
    """
    Stored state could not be read back.

    Raised when:
    - The version file is missing or does not hold "major.minor"
    - A refs file cannot be decoded
    """
    http_status = 500


class InvalidFormat(SonopinError):
    """Text that should be a version (or similar token) is malformed."""
    http_status = 400


class FormatMismatch(SonopinError):
    """The two audio inputs of a compare do not share a sample format."""
    http_status = 400


class UnsupportedFormat(FormatMismatch):
    """The audio input uses a sample format the codec cannot encode."""
    pass


class InvalidPatchName(SonopinError):
    """A patch filename does not follow {basename}_{op}_offset{N}_len{M}.bin."""
    http_status = 400


class UnknownOperation(SonopinError):
    """A patch operation code other than 'a' or 's'."""
    http_status = 400


class OutOfRange(SonopinError):
    """A patch offset or length does not fit the target it is applied to."""
    http_status = 400


class Conflict(SonopinError):
    """A project or version already exists."""
    http_status = 409


class NotFound(SonopinError):
    """A project, version or archived file does not exist."""
    http_status = 404


class ArchiveEntryNotFound(NotFound):
    """
    An archive scan ended without a match.

    Raised when:
    - The requested files/ entry is not in the archive
    - The archive is truncated or not a gzip'd tar stream
    """
    pass


class UploadRejected(SonopinError):
    """The server answered a pin upload with anything but 201 Created."""
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RemoteError(SonopinError):
    """The server could not be reached or answered a fetch with an error."""
    http_status = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class IOFailure(SonopinError):
    """Generic read, write or create failure on the local filesystem."""
    http_status = 500
