"""
Patch application.

A patch artifact carries its instruction in its filename:

    {basename}_{op}_offset{offset}_len{length}.bin

where op is "a" (insert the payload at offset) or "s" (remove length bytes
at offset). Offsets address the sample stream, so on WAV targets the patch
is spliced into the data chunk and the header sizes are rewritten; any other
target is patched as raw bytes.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Union

from sonopin.shared.constants import (
    PATCH_ADDITION,
    PATCH_SUBTRACTION,
    PATCH_SUFFIX,
    TRACKED_AUDIO_EXTENSION,
)
from sonopin.shared.errors import IOFailure, InvalidPatchName, OutOfRange, UnknownOperation
from .samples import read_sample_stream, write_sample_stream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchSpec:
    basename: str
    operation: str
    offset: int
    length: int


def _number(segment: str, prefix: str, name: str) -> int:
    if not segment.startswith(prefix):
        raise InvalidPatchName(f"{name}: expected '{prefix}' segment, got '{segment}'")
    digits = segment[len(prefix):]
    if not re.fullmatch(r"[0-9]+", digits):
        raise InvalidPatchName(f"{name}: '{segment}' is not a valid {prefix} value")
    return int(digits)


def parse_patch_name(name: Union[str, Path]) -> PatchSpec:
    """
    Parse a patch artifact filename.

    The last three underscore-separated segments are the operation, offset
    and length, and everything before them is the basename. A name with
    more than four segments is therefore accepted, the extra underscores
    belonging to the basename ("my_song.wav_a_offset0_len2.bin"). Fewer
    than four segments is an error.

    Raises:
        InvalidPatchName: on a missing segment or an offset/length that is
            not plain ASCII decimal digits
    """
    name = Path(name).name
    stem = name[:-len(PATCH_SUFFIX)] if name.endswith(PATCH_SUFFIX) else name
    parts = stem.rsplit("_", 3)
    if len(parts) != 4 or not parts[0] or not parts[1]:
        raise InvalidPatchName(
            f"{name}: expected {{basename}}_{{op}}_offset{{N}}_len{{M}}{PATCH_SUFFIX}"
        )
    basename, operation, offset, length = parts
    return PatchSpec(
        basename=basename,
        operation=operation,
        offset=_number(offset, "offset", name),
        length=_number(length, "len", name),
    )


def apply_patch_bytes(data: bytes, spec: PatchSpec, payload: bytes) -> bytes:
    """
    Apply one patch to a byte sequence.

    Raises:
        UnknownOperation: if the operation is neither "a" nor "s"
        OutOfRange: if the offset or span falls outside `data`, or an
            addition payload's length disagrees with the filename
    """
    if spec.operation == PATCH_ADDITION:
        if spec.offset > len(data):
            raise OutOfRange(f"Offset {spec.offset} is past the end of {len(data)} bytes")
        if len(payload) != spec.length:
            raise OutOfRange(
                f"Payload is {len(payload)} bytes but the patch name says {spec.length}"
            )
        return data[:spec.offset] + payload + data[spec.offset:]

    if spec.operation == PATCH_SUBTRACTION:
        if spec.offset + spec.length > len(data):
            raise OutOfRange(
                f"Cannot remove {spec.length} bytes at offset {spec.offset} "
                f"from {len(data)} bytes"
            )
        return data[:spec.offset] + data[spec.offset + spec.length:]

    raise UnknownOperation(f"Unknown patch operation '{spec.operation}'")


def _is_audio(path: Path) -> bool:
    return path.suffix.lower() == TRACKED_AUDIO_EXTENSION


def _write_raw(path: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        os.replace(tmp, path)
    except OSError as e:
        raise IOFailure(f"Could not write {path}: {e}") from e
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


def _read_payload(patch: Path) -> bytes:
    try:
        return patch.read_bytes()
    except OSError as e:
        raise IOFailure(f"Could not read patch {patch}: {e}") from e


def _load(target: Path) -> bytes:
    if _is_audio(target):
        return read_sample_stream(target)
    try:
        return target.read_bytes()
    except OSError as e:
        raise IOFailure(f"Could not read {target}: {e}") from e


def _store(target: Path, data: bytes) -> None:
    if _is_audio(target):
        write_sample_stream(target, data)
    else:
        _write_raw(target, data)


def apply_patch(target: Union[str, Path], patch: Union[str, Path]) -> PatchSpec:
    """
    Apply a patch artifact to a file in place.

    Args:
        target: File to modify
        patch: Patch artifact; its filename carries the instruction

    Returns:
        The parsed PatchSpec
    """
    target, patch = Path(target), Path(patch)
    spec = parse_patch_name(patch)
    if spec.operation not in (PATCH_ADDITION, PATCH_SUBTRACTION):
        raise UnknownOperation(f"Unknown patch operation '{spec.operation}'")

    payload = _read_payload(patch)
    data = _load(target)
    _store(target, apply_patch_bytes(data, spec, payload))

    logger.debug("Applied %s to %s", patch.name, target)
    return spec


def apply_patch_set(target: Union[str, Path], patch_dir: Union[str, Path]) -> List[PatchSpec]:
    """
    Apply every artifact in patch_dir named after target.

    Artifacts are applied by ascending offset, subtraction before addition at
    the same offset, which is the order compare_files(..., runs=True) expects.
    The target is rewritten once, after every patch applied cleanly.
    """
    target, patch_dir = Path(target), Path(patch_dir)
    candidates = []
    for path in sorted(patch_dir.glob(f"*{PATCH_SUFFIX}")):
        spec = parse_patch_name(path)
        if spec.basename == target.name:
            candidates.append((spec.offset, spec.operation != PATCH_SUBTRACTION, path.name, spec, path))

    if not candidates:
        logger.info("No patches for %s in %s", target.name, patch_dir)
        return []

    data = _load(target)
    applied = []
    for _, _, _, spec, path in sorted(candidates, key=lambda c: c[:3]):
        data = apply_patch_bytes(data, spec, _read_payload(path))
        applied.append(spec)
    _store(target, data)

    logger.info("Applied %d patches to %s", len(applied), target)
    return applied
