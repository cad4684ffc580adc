import logging
import struct

import numpy as np
import pytest

from sonopin.audio import (
    compare_files,
    compare_sample_runs,
    compare_samples,
    count_change_runs,
    encode_samples,
    read_samples,
)
from sonopin.audio.patch import PatchSpec, apply_patch_bytes
from sonopin.shared.errors import FormatMismatch, UnsupportedFormat


def _apply(old_bytes, diff):
    """Apply a SampleDiff to encoded old samples, subtraction first."""
    data = old_bytes
    if diff.subtractions:
        spec = PatchSpec("x", "s", diff.subtractions_offset, len(diff.subtractions))
        data = apply_patch_bytes(data, spec, diff.subtractions)
    if diff.additions:
        spec = PatchSpec("x", "a", diff.additions_offset, len(diff.additions))
        data = apply_patch_bytes(data, spec, diff.additions)
    return data


def _apply_runs(old, new, bit_depth):
    data = encode_samples(old, bit_depth)
    runs = compare_sample_runs(old, new, bit_depth)
    for run in sorted(runs, key=lambda r: min(o for o in (r.subtractions_offset, r.additions_offset) if o is not None)):
        data = _apply(data, run)
    return data


def test_identical_sequences_produce_empty_diff():
    diff = compare_samples([1, 2, 3], [1, 2, 3], 16)
    assert diff.is_empty
    assert diff.additions_offset is None
    assert diff.subtractions_offset is None


def test_changed_sample_goes_to_both_streams():
    diff = compare_samples([1, 2, 3, 4], [1, 2, 9, 4], 16)
    assert diff.additions == encode_samples([9], 16)
    assert diff.subtractions == encode_samples([3], 16)
    assert diff.additions_offset == 4
    assert diff.subtractions_offset == 4


def test_longer_new_sequence_only_adds():
    diff = compare_samples([1, 2], [1, 2, 3, 4], 16)
    assert diff.additions == struct.pack("<2h", 3, 4)
    assert diff.additions_offset == 4
    assert diff.subtractions == b""
    assert diff.subtractions_offset is None


def test_shorter_new_sequence_only_subtracts():
    diff = compare_samples([1, 2, 3], [1], 32)
    assert diff.subtractions == struct.pack("<2i", 2, 3)
    assert diff.subtractions_offset == 4
    assert diff.additions == b""


def test_encoding_is_sparse():
    old = np.arange(1000, dtype=np.int16)
    new = old.copy()
    new[[10, 500, 999]] += 1
    diff = compare_samples(old, new, 16)
    assert len(diff.additions) == 3 * 2
    assert len(diff.subtractions) == 3 * 2
    assert diff.additions_offset == 20


def test_32_bit_samples_are_little_endian():
    assert encode_samples([1, -2], 32) == b"\x01\x00\x00\x00\xfe\xff\xff\xff"


def test_float_samples_keep_their_bit_pattern():
    old = np.array([0.5, 1.0], dtype=np.float32)
    new = np.array([0.5, -1.0], dtype=np.float32)
    diff = compare_samples(old, new, 32, is_float=True)
    assert diff.additions == struct.pack("<f", -1.0)
    assert diff.subtractions == struct.pack("<f", 1.0)


def test_float_signed_zero_is_a_change():
    diff = compare_samples(np.array([0.0], dtype=np.float32), np.array([-0.0], dtype=np.float32), 32, is_float=True)
    assert not diff.is_empty


def test_unsupported_bit_depth():
    with pytest.raises(UnsupportedFormat):
        compare_samples([1], [2], 24)


@pytest.mark.parametrize("old, new", [
    ([10, 20, 30, 40, 50], [10, 21, 31, 40, 50]),
    ([1, 2, 3], [1, 2, 3, 4, 5]),
    ([1, 2, 3, 4, 5], [1, 2]),
    ([1, 2, 3, 4], [1, 2, 7, 8, 9, 10]),
    ([], [1, 2]),
])
def test_contiguous_change_patches_old_into_new(old, new):
    diff = compare_samples(old, new, 16)
    assert _apply(encode_samples(old, 16), diff) == encode_samples(new, 16)


def test_runs_patch_scattered_changes():
    old = list(range(10))
    new = list(range(10)) + [99, 100]
    new[1] = -1
    new[7] = -7
    new[8] = -8

    runs = compare_sample_runs(old, new, 16)

    assert [r.additions_offset for r in runs] == [2, 14, 20]
    assert _apply_runs(old, new, 16) == encode_samples(new, 16)


def test_runs_fold_adjacent_tail_into_last_run():
    runs = compare_sample_runs([1, 2, 3], [1, 5, 6, 7], 16)
    assert len(runs) == 1
    assert runs[0].additions == encode_samples([5, 6, 7], 16)
    assert runs[0].subtractions == encode_samples([2, 3], 16)


def test_runs_of_identical_sequences_are_empty():
    assert compare_sample_runs([1, 2], [1, 2], 32) == []


@pytest.mark.parametrize("old,new,expected", [
    ([1, 2, 3], [1, 2, 3], 0),
    ([1, 2, 3, 4], [1, 9, 9, 4], 1),
    ([1, 2, 3, 4], [9, 2, 3, 9], 2),
    ([1, 2, 3], [1, 2, 9, 7], 1),
    ([1, 2, 3], [1, 2, 3, 7], 1),
    ([9, 2, 3], [1, 2, 3, 7], 2),
])
def test_count_change_runs(old, new, expected):
    assert count_change_runs(old, new, 16) == expected
    assert count_change_runs(old, new, 16) == len(compare_sample_runs(old, new, 16))


def test_compare_files_warns_about_scattered_changes(tmp_path, make_wav, caplog):
    old = make_wav(tmp_path / "take.wav", [0, 1, 2, 3, 4])
    new = make_wav(tmp_path / "take2.wav", [9, 1, 2, 3, 9])

    with caplog.at_level(logging.WARNING, logger="sonopin.audio.diff"):
        compare_files(old, new, tmp_path / "patches")
    assert "2 separate runs" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="sonopin.audio.diff"):
        compare_files(old, new, tmp_path / "runs", runs=True)
    assert "separate runs" not in caplog.text


def test_compare_files_writes_named_artifacts(tmp_path, make_wav):
    old = make_wav(tmp_path / "take.wav", [0, 1, 2, 3])
    new = make_wav(tmp_path / "take2.wav", [0, 1, 9, 3])

    written = compare_files(old, new, tmp_path / "patches")

    assert sorted(p.name for p in written) == [
        "take.wav_a_offset4_len2.bin",
        "take.wav_s_offset4_len2.bin",
    ]
    assert (tmp_path / "patches" / "take.wav_a_offset4_len2.bin").read_bytes() == struct.pack("<h", 9)


def test_compare_identical_files_writes_nothing(tmp_path, make_wav):
    old = make_wav(tmp_path / "a.wav", [1, 2, 3])
    new = make_wav(tmp_path / "b.wav", [1, 2, 3])
    assert compare_files(old, new, tmp_path / "out") == []
    assert list((tmp_path / "out").iterdir()) == []


def test_compare_rejects_bit_depth_mismatch(tmp_path, make_wav):
    old = make_wav(tmp_path / "a.wav", [1, 2], subtype="PCM_16")
    new = make_wav(tmp_path / "b.wav", [1, 2], subtype="PCM_32")
    with pytest.raises(FormatMismatch):
        compare_files(old, new, tmp_path / "out")


def test_compare_rejects_float_against_integer(tmp_path, make_wav):
    old = make_wav(tmp_path / "a.wav", [0.5, 0.25], subtype="FLOAT")
    new = make_wav(tmp_path / "b.wav", [1, 2], subtype="PCM_32")
    with pytest.raises(FormatMismatch):
        compare_files(old, new, tmp_path / "out")


def test_read_samples_interleaves_channels(tmp_path, make_wav):
    path = make_wav(tmp_path / "stereo.wav", [1, -1, 2, -2, 3, -3], channels=2)
    buffer = read_samples(path)
    assert buffer.channels == 2
    assert buffer.bit_depth == 16
    assert list(buffer.samples) == [1, -1, 2, -2, 3, -3]


@pytest.mark.parametrize("seed", range(5))
@pytest.mark.parametrize("bit_depth", [16, 32])
def test_runs_invert_random_equal_length_edits(seed, bit_depth):
    rng = np.random.default_rng(seed)
    old = rng.integers(-1000, 1000, size=200)
    new = old.copy()
    touched = rng.choice(200, size=30, replace=False)
    new[touched] = rng.integers(-1000, 1000, size=30)

    assert _apply_runs(old, new, bit_depth) == encode_samples(new, bit_depth)
    assert _apply_runs(new, old, bit_depth) == encode_samples(old, bit_depth)
