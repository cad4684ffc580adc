from unittest.mock import patch

import pytest
from click.testing import CliRunner

from sonopin.audio import read_samples
from sonopin.cli import cli
from sonopin.shared.errors import RemoteError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def workdir(project, monkeypatch):
    monkeypatch.chdir(project)
    return project


def test_init_then_pin_without_push(runner, workdir):
    result = runner.invoke(cli, ["init", "song", "-r", "http://localhost:6969"])
    assert result.exit_code == 0, result.output
    assert "Initialized project" in result.output

    result = runner.invoke(cli, ["pin", "-m", "first", "--no-push"])
    assert result.exit_code == 0, result.output
    assert "Pinned version 0.2" in result.output
    assert "+ drums.wav" in result.output


def test_init_twice_fails(runner, workdir):
    runner.invoke(cli, ["init", "song", "-r", "http://localhost:6969"])
    result = runner.invoke(cli, ["init", "song", "-r", "http://localhost:6969"])
    assert result.exit_code == 1
    assert "already a sonopin project" in result.output


def test_init_requires_remote(runner, workdir):
    result = runner.invoke(cli, ["init", "song"])
    assert result.exit_code != 0


def test_pin_outside_project_fails(runner, tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["pin", "--no-push"])
    assert result.exit_code == 1
    assert "not a sonopin project" in result.output


def test_pin_push_failure_is_a_warning(runner, workdir):
    runner.invoke(cli, ["init", "song", "-r", "http://localhost:6969"])
    with patch("sonopin.sync.client.SyncClient") as client_cls:
        client_cls.return_value.push.side_effect = RemoteError("connection refused")
        result = runner.invoke(cli, ["pin"])

    assert result.exit_code == 0, result.output
    assert "Pinned version 0.2" in result.output
    assert "not pushed" in result.output
    assert "connection refused" in result.output


def test_log_lists_pins(runner, workdir):
    runner.invoke(cli, ["init", "song", "-r", "http://localhost:6969"])
    runner.invoke(cli, ["pin", "-m", "rough mix", "--no-push"])

    result = runner.invoke(cli, ["log"])

    assert result.exit_code == 0, result.output
    assert "0.2" in result.output
    assert "rough mix" in result.output
    assert "Initial version 0.1" in result.output


def test_compare_and_patch(runner, tmp_path, make_wav):
    old = make_wav(tmp_path / "take.wav", [0, 1, 2, 3])
    new = make_wav(tmp_path / "new" / "take.wav", [0, 1, 9, 3])
    patches = tmp_path / "patches"

    result = runner.invoke(cli, ["compare", str(old), str(new), str(patches)])
    assert result.exit_code == 0, result.output
    assert "2 patch file(s)" in result.output

    result = runner.invoke(cli, ["patch", str(old), str(patches)])
    assert result.exit_code == 0, result.output
    assert list(read_samples(old).samples) == [0, 1, 9, 3]


def test_compare_scattered_changes_suggests_runs(runner, tmp_path, make_wav):
    old = make_wav(tmp_path / "take.wav", [0, 1, 2, 3, 4])
    new = make_wav(tmp_path / "new" / "take.wav", [9, 1, 2, 3, 9])

    result = runner.invoke(cli, ["compare", str(old), str(new), str(tmp_path / "patches")])
    assert result.exit_code == 0, result.output
    assert "2 separate runs" in result.output
    assert "--runs" in result.output

    result = runner.invoke(cli, ["compare", "--runs", str(old), str(new), str(tmp_path / "runs")])
    assert result.exit_code == 0, result.output
    assert "separate runs" not in result.output


def test_patch_single_artifacts_on_stereo_wav(runner, tmp_path, make_wav):
    old = make_wav(tmp_path / "mix.wav", [1, -1, 2, -2], channels=2)
    new = make_wav(tmp_path / "new" / "mix.wav", [1, -1, 2, -3], channels=2)
    patches = tmp_path / "patches"
    runner.invoke(cli, ["compare", str(old), str(new), str(patches)])

    for pattern in ("*_s_*.bin", "*_a_*.bin"):
        result = runner.invoke(cli, ["patch", str(old), str(next(patches.glob(pattern)))])
        assert result.exit_code == 0, result.output
    assert list(read_samples(old).samples) == [1, -1, 2, -3]


def test_compare_identical_files(runner, tmp_path, make_wav):
    old = make_wav(tmp_path / "a.wav", [1, 2])
    new = make_wav(tmp_path / "b.wav", [1, 2])
    result = runner.invoke(cli, ["compare", str(old), str(new), str(tmp_path / "out")])
    assert result.exit_code == 0
    assert "identical" in result.output


def test_patch_with_bad_name_fails(runner, tmp_path):
    target = tmp_path / "data.raw"
    target.write_bytes(b"abc")
    bad = tmp_path / "data.raw_q_offset0_len1.bin"
    bad.write_bytes(b"a")

    result = runner.invoke(cli, ["patch", str(target), str(bad)])

    assert result.exit_code == 1
    assert "Unknown patch operation" in result.output
