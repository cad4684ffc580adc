"""
Sample-level binary diff.

Two sample sequences of the same format are walked in lockstep. Positions
where both have a sample and the samples differ contribute the new sample to
the additions stream and the old sample to the subtractions stream. Trailing
samples only the old sequence has go to subtractions, trailing samples only
the new sequence has go to additions. Equal samples contribute nothing.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import numpy as np

from sonopin.shared.constants import (
    PATCH_ADDITION,
    PATCH_NAME_TEMPLATE,
    PATCH_SUBTRACTION,
)
from sonopin.shared.errors import FormatMismatch, IOFailure
from .samples import bytes_per_sample, read_samples, sample_dtype

logger = logging.getLogger(__name__)


@dataclass
class SampleDiff:
    """
    Additions and subtractions between two sample sequences.

    Offsets are byte offsets into the sample stream, None for an empty stream.
    """
    additions: bytes
    subtractions: bytes
    additions_offset: Optional[int] = None
    subtractions_offset: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.subtractions


def _prepare(old, new, bit_depth: int, is_float: bool):
    dtype = sample_dtype(bit_depth, is_float)
    old = np.asarray(old).astype(dtype, copy=False)
    new = np.asarray(new).astype(dtype, copy=False)
    # Compare bit patterns so float NaNs and signed zeros are handled exactly.
    bits = np.dtype(f'<i{dtype.itemsize}')
    shared = min(len(old), len(new))
    mask = old[:shared].view(bits) != new[:shared].view(bits)
    return old, new, shared, mask, bytes_per_sample(bit_depth)


def _stream_offset(changed: np.ndarray, shared: int, length: int, width: int) -> Optional[int]:
    if changed.size:
        return int(changed[0]) * width
    if length > shared:
        return shared * width
    return None


def compare_samples(old, new, bit_depth: int, is_float: bool = False) -> SampleDiff:
    """
    Diff two sample sequences into one additions and one subtractions stream.

    Args:
        old: Original samples
        new: Changed samples
        bit_depth: 16 or 32
        is_float: 32-bit samples are IEEE floats

    Returns:
        SampleDiff whose offsets mark the first sample each stream covers
    """
    old, new, shared, mask, width = _prepare(old, new, bit_depth, is_float)
    changed = np.flatnonzero(mask)

    additions = np.concatenate([new[:shared][mask], new[shared:]])
    subtractions = np.concatenate([old[:shared][mask], old[shared:]])

    return SampleDiff(
        additions=additions.tobytes(),
        subtractions=subtractions.tobytes(),
        additions_offset=_stream_offset(changed, shared, len(new), width),
        subtractions_offset=_stream_offset(changed, shared, len(old), width),
    )


def count_change_runs(old, new, bit_depth: int, is_float: bool = False) -> int:
    """
    Number of contiguous runs of changes, a length-changing tail not adjacent
    to the last run counting as its own run. compare_samples only inverts
    when this is at most 1.
    """
    old, new, shared, mask, _ = _prepare(old, new, bit_depth, is_float)
    changed = np.flatnonzero(mask)
    runs = int(np.count_nonzero(np.diff(changed) > 1)) + 1 if changed.size else 0
    if len(old) != len(new) and not (changed.size and changed[-1] + 1 == shared):
        runs += 1
    return runs


def compare_sample_runs(old, new, bit_depth: int, is_float: bool = False) -> List[SampleDiff]:
    """
    Diff two sample sequences into one SampleDiff per contiguous run of changes.

    Every run inside the shared length replaces as many samples as it
    removes, so applying the runs in offset order (subtraction first) turns
    `old` into `new` exactly, however scattered the changes are. The
    length-changing tail is folded into the last run when adjacent to it.
    """
    old, new, shared, mask, width = _prepare(old, new, bit_depth, is_float)
    changed = np.flatnonzero(mask)

    spans = []
    if changed.size:
        breaks = np.flatnonzero(np.diff(changed) > 1) + 1
        for run in np.split(changed, breaks):
            spans.append([int(run[0]), int(run[-1]) + 1])

    if len(old) != len(new):
        if spans and spans[-1][1] == shared:
            spans[-1].append(True)
        else:
            spans.append([shared, shared, True])

    runs = []
    for span in spans:
        start, end = span[0], span[1]
        tail = len(span) == 3
        added = new[start:] if tail else new[start:end]
        removed = old[start:] if tail else old[start:end]
        runs.append(SampleDiff(
            additions=added.tobytes(),
            subtractions=removed.tobytes(),
            additions_offset=start * width if len(added) else None,
            subtractions_offset=start * width if len(removed) else None,
        ))
    return runs


def patch_filename(basename: str, operation: str, offset: int, length: int) -> str:
    return PATCH_NAME_TEMPLATE.format(basename=basename, op=operation, offset=offset, length=length)


def write_patches(diff: SampleDiff, basename: str, output_dir: Union[str, Path]) -> List[Path]:
    """Write the non-empty streams of a diff as patch artifacts."""
    output_dir = Path(output_dir)
    written = []
    streams = (
        (PATCH_ADDITION, diff.additions, diff.additions_offset),
        (PATCH_SUBTRACTION, diff.subtractions, diff.subtractions_offset),
    )
    for operation, payload, offset in streams:
        if not payload:
            continue
        path = output_dir / patch_filename(basename, operation, offset, len(payload))
        try:
            path.write_bytes(payload)
        except OSError as e:
            raise IOFailure(f"Could not write patch {path}: {e}") from e
        written.append(path)
    return written


def compare_files(old_path: Union[str, Path], new_path: Union[str, Path],
                  output_dir: Union[str, Path], runs: bool = False) -> List[Path]:
    """
    Compare two audio files and write patch artifacts for the differences.

    Artifacts are named after the old file:
    {old basename}_{a|s}_offset{N}_len{M}.bin. Identical inputs write nothing.

    Args:
        old_path: Original audio file
        new_path: Changed audio file
        output_dir: Directory for the artifacts (created if missing)
        runs: Write one artifact pair per contiguous run of changes

    Returns:
        Paths of the artifacts written

    Raises:
        FormatMismatch: if the files do not share bit depth and sample type
    """
    old = read_samples(old_path)
    new = read_samples(new_path)

    if (old.bit_depth, old.is_float) != (new.bit_depth, new.is_float):
        raise FormatMismatch(
            f"bit depth mismatch: old file is {old.bit_depth}-bit"
            f"{' float' if old.is_float else ''}, new file is {new.bit_depth}-bit"
            f"{' float' if new.is_float else ''}"
        )
    if (old.sample_rate, old.channels) != (new.sample_rate, new.channels):
        logger.warning("Sample rate or channel layout differs between %s and %s", old_path, new_path)

    if runs:
        diffs = compare_sample_runs(old.samples, new.samples, old.bit_depth, old.is_float)
    else:
        scattered = count_change_runs(old.samples, new.samples, old.bit_depth, old.is_float)
        if scattered > 1:
            logger.warning(
                "%s and %s differ in %d separate runs; single-stream patches will not "
                "reproduce %s, compare with runs=True instead", old_path, new_path, scattered, new_path
            )
        diffs = [compare_samples(old.samples, new.samples, old.bit_depth, old.is_float)]

    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailure(f"Could not create {output_dir}: {e}") from e

    basename = Path(old_path).name
    written = []
    for diff in diffs:
        written.extend(write_patches(diff, basename, output_dir))
    logger.info("Compared %s and %s: %d artifacts", old_path, new_path, len(written))
    return written
