from __future__ import annotations

import json
from pathlib import Path

import pytest

import prwatch.config as cfgmod
from prwatch.config import DEFAULT_REFRESH_SECONDS, AppConfig, load_config, save_config


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    conf_dir = tmp_path / ".config" / "prwatch"
    conf_path = conf_dir / "config.json"
    monkeypatch.setattr(cfgmod, "CONFIG_DIR", conf_dir)
    monkeypatch.setattr(cfgmod, "CONFIG_PATH", conf_path)
    return conf_path


def test_save_and_load_config_uses_json(config_path: Path) -> None:
    save_config(AppConfig(repos=["o/r", "a/b"], refresh_seconds=30, auth_token="tok"))

    data = json.loads(config_path.read_text())
    assert data == {"repos": ["o/r", "a/b"], "refresh_seconds": 30, "auth_token": "tok"}

    loaded = load_config()
    assert loaded.repos == ["o/r", "a/b"]
    assert loaded.refresh_seconds == 30
    assert loaded.auth_token == "tok"


def test_load_config_creates_default_when_missing(config_path: Path) -> None:
    cfg = load_config()
    assert config_path.exists()
    assert cfg.repos == []
    assert cfg.refresh_seconds == DEFAULT_REFRESH_SECONDS
    assert "auth_token" not in json.loads(config_path.read_text())


def test_load_config_sanitizes_values(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps({"repos": ["o/r", 3, None], "refresh_seconds": -1}))
    cfg = load_config()
    assert cfg.repos == ["o/r"]
    assert cfg.refresh_seconds == DEFAULT_REFRESH_SECONDS


def test_from_dict_rejects_bool_refresh() -> None:
    assert AppConfig.from_dict({"refresh_seconds": True}).refresh_seconds == DEFAULT_REFRESH_SECONDS
    assert AppConfig.from_dict({"refresh_seconds": 12}).refresh_seconds == 12


def test_resolved_token_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "envtok")
    assert AppConfig().resolved_token() == "envtok"
    assert AppConfig(auth_token="cfgtok").resolved_token() == "cfgtok"
    monkeypatch.delenv("GITHUB_TOKEN")
    assert AppConfig().resolved_token() is None
