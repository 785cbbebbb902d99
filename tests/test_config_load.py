from pathlib import Path

import config


def _write_config(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")


def test_load_config_copies_example_when_missing(tmp_path, monkeypatch):
    config_dir = tmp_path / ".linguaflip"
    config_path = config_dir / "config.toml"

    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)

    loaded = config.load_config()

    assert config_path.exists()
    assert loaded["session"]["max_cards"] == 20
    assert loaded["sync"]["max_retries"] == 3
    assert loaded["mastery"]["min_repetitions"] == 5


def test_load_config_applies_env_overrides(tmp_path, monkeypatch):
    config_dir = tmp_path / ".linguaflip"
    config_dir.mkdir()
    config_path = config_dir / "config.toml"
    _write_config(config_path, "[sync]\nuser_id = \"ana\"\nmax_retries = 5\nbackground = false\n")

    monkeypatch.setattr(config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    monkeypatch.setenv("LINGUAFLIP_SYNC_MAX_RETRIES", "7")
    monkeypatch.setenv("LINGUAFLIP_SESSION_MODE", "mixed")

    loaded = config.load_config()

    assert loaded["sync"]["user_id"] == "ana"
    assert loaded["sync"]["max_retries"] == 7
    assert loaded["sync"]["background"] is False
    assert loaded["session"]["mode"] == "mixed"
    assert config.get_config_value("sync", "user_id") == "ana"


def test_resolve_data_path_uses_data_dir(tmp_path):
    settings = {"storage": {"data_dir": str(tmp_path)}}

    assert config.resolve_data_path(settings, "remote.db") == tmp_path / "remote.db"
    assert config.resolve_data_path(settings, str(tmp_path / "abs.db")) == tmp_path / "abs.db"
