"""Sample-level audio diff and patch codec."""

from .diff import SampleDiff, compare_files, compare_sample_runs, compare_samples, count_change_runs
from .patch import PatchSpec, apply_patch, apply_patch_bytes, apply_patch_set, parse_patch_name
from .samples import SampleBuffer, encode_samples, read_samples

__all__ = [
    "SampleDiff",
    "compare_files",
    "compare_sample_runs",
    "compare_samples",
    "count_change_runs",
    "PatchSpec",
    "apply_patch",
    "apply_patch_bytes",
    "apply_patch_set",
    "parse_patch_name",
    "SampleBuffer",
    "encode_samples",
    "read_samples",
]
