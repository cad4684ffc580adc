import json
import shutil
from unittest.mock import MagicMock

import pytest

from sonopin.shared.config import load_remote_config
from sonopin.shared.errors import Conflict, NotARepo, RemoteError
from sonopin.shared.models import DiffType, RemoteConfig, SyncStatus, Version
from sonopin.store import history, init_project, pin, read_version, unpack
from sonopin.store.refs import read_refs, store_path, version_path


def test_init_creates_baseline(project):
    tracked = init_project(project, "song", "http://localhost:6969")

    assert tracked == {"drums.wav", "stems/bass.wav"}
    assert read_version(project) == Version(0, 1)
    assert read_refs(project, Version(0, 1)) == set()
    archive = unpack(version_path(project, Version(0, 1)) / "pin.tar.gz")
    assert archive.message == "Initial version 0.1"
    assert archive.diffs == []
    assert archive.files == {}
    assert load_remote_config(project) == RemoteConfig("http://localhost:6969", "song")


def test_init_twice_conflicts(project):
    init_project(project, "song", "http://localhost:6969")
    with pytest.raises(Conflict):
        init_project(project, "song", "http://localhost:6969")


def test_first_pin_adds_every_tracked_file(project):
    init_project(project, "song", "http://localhost:6969")

    result = pin(project, message="first mix")

    assert result.version == Version(0, 2)
    assert sorted(result.added) == ["drums.wav", "stems/bass.wav"]
    assert result.removed == []
    assert result.remote is SyncStatus.SKIPPED

    directory = version_path(project, Version(0, 2))
    archive = unpack(directory / "pin.tar.gz")
    assert archive.message == "first mix"
    assert archive.files["drums.wav"] == (project / "drums.wav").read_bytes()
    assert set(archive.files) == {"drums.wav", "stems/bass.wav"}
    assert read_refs(project, Version(0, 2)) == {"drums.wav", "stems/bass.wav"}
    manifest = json.loads((directory / "diffs.json").read_text())
    assert {entry["type"] for entry in manifest} == {"added"}


def test_removed_file_is_recorded_without_content(project):
    init_project(project, "song", "http://localhost:6969")
    pin(project)
    (project / "drums.wav").unlink()

    result = pin(project)

    assert result.version == Version(0, 3)
    assert [(d.file, d.type) for d in result.diffs] == [("drums.wav", DiffType.REMOVED)]
    archive = unpack(version_path(project, Version(0, 3)) / "pin.tar.gz")
    assert archive.message == "Pinned version 0.3"
    assert archive.files == {}


def test_versions_strictly_increase(project):
    init_project(project, "song", "http://localhost:6969")
    versions = [pin(project).version for _ in range(3)]
    assert versions == sorted(versions)
    assert len(set(versions)) == 3
    assert read_version(project) == Version(0, 4)


def test_unchanged_tree_pins_empty_diff(project):
    init_project(project, "song", "http://localhost:6969")
    pin(project)
    assert pin(project).diffs == []


def test_pin_outside_project(tmp_path):
    with pytest.raises(NotARepo):
        pin(tmp_path)


def test_push_success_is_reported(project):
    init_project(project, "song", "http://localhost:6969")
    client = MagicMock()

    result = pin(project, client=client)

    client.push.assert_called_once_with(project, Version(0, 2))
    assert result.remote is SyncStatus.OK


def test_push_failure_keeps_local_pin(project):
    init_project(project, "song", "http://localhost:6969")
    client = MagicMock()
    client.push.side_effect = RemoteError("connection refused")

    result = pin(project, client=client)

    assert result.remote is SyncStatus.FAILED
    assert "connection refused" in result.remote_error
    assert read_version(project) == Version(0, 2)
    assert (version_path(project, Version(0, 2)) / "pin.tar.gz").is_file()


def test_missing_predecessor_records_everything_as_added(project):
    init_project(project, "song", "http://localhost:6969")
    pin(project)
    shutil.rmtree(version_path(project, Version(0, 2)))

    result = pin(project)

    assert result.version == Version(0, 3)
    assert sorted(result.added) == ["drums.wav", "stems/bass.wav"]


def test_history_is_newest_first(project):
    init_project(project, "song", "http://localhost:6969")
    pin(project, message="two files")
    (project / "drums.wav").unlink()
    pin(project, message="dropped drums")

    summaries = history(project)

    assert [str(s.version) for s in summaries] == ["0.3", "0.2", "0.1"]
    assert summaries[0].message == "dropped drums"
    assert (summaries[0].added, summaries[0].removed) == (0, 1)
    assert (summaries[1].added, summaries[1].removed) == (2, 0)
    assert [str(s.version) for s in history(project, limit=1)] == ["0.3"]


def test_store_directory_never_pinned(project):
    init_project(project, "song", "http://localhost:6969")
    (store_path(project) / "hidden.wav").write_bytes(b"x")
    assert "hidden.wav" not in pin(project).added
