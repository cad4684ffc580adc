import pytest

from sonopin.shared.config import load_remote_config, save_remote_config, server_defaults
from sonopin.shared.errors import CorruptState, NotARepo
from sonopin.shared.models import RemoteConfig


def test_remote_config_round_trip(tmp_path):
    save_remote_config(tmp_path, RemoteConfig(server="http://srv:6969", project="song"))
    assert load_remote_config(tmp_path) == RemoteConfig(server="http://srv:6969", project="song")


def test_remote_config_ignores_unknown_keys(tmp_path):
    (tmp_path / ".sonopin").mkdir()
    (tmp_path / ".sonopin" / "remote.json").write_text(
        '{"server": "http://srv", "project": "song", "colour": "blue"}'
    )
    assert load_remote_config(tmp_path).project == "song"


def test_remote_config_outside_project(tmp_path):
    with pytest.raises(NotARepo):
        load_remote_config(tmp_path)


@pytest.mark.parametrize("content", ["not json", '{"server": "http://srv"}'])
def test_invalid_remote_config(tmp_path, content):
    (tmp_path / ".sonopin").mkdir()
    (tmp_path / ".sonopin" / "remote.json").write_text(content)
    with pytest.raises(CorruptState):
        load_remote_config(tmp_path)


def test_base_url_drops_trailing_slash():
    assert RemoteConfig(server="http://srv:6969/", project="p").base_url == "http://srv:6969"


def test_server_defaults_from_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SONOPIN_DATA_DIR", "/srv/sonopin")
    monkeypatch.setenv("SONOPIN_PORT", "7070")
    monkeypatch.delenv("SONOPIN_SHUTDOWN_GRACE", raising=False)

    defaults = server_defaults()

    assert defaults == {"data_dir": "/srv/sonopin", "port": 7070, "grace": 5.0}
