# WatchRelay test scripts
from __future__ import annotations

import json
from pathlib import Path

import pytest

from wr_platform import config_base as cb


def test_defaults_when_no_file(config_base: Path) -> None:
    cfg = cb.load_config()
    assert cfg["plex"]["tokens"] == []
    assert cfg["rss"]["poll_interval_sec"] == 10
    assert cfg["rss"]["quiet_period_sec"] == 60
    assert cb.storage_path(cfg) == config_base / "watchrelay_db"


def test_env_tokens_seed_when_file_has_none(config_base: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLEX_TOKENS", "tA, tB")
    assert cb.load_config()["plex"]["tokens"] == ["tA", "tB"]

    monkeypatch.setenv("PLEX_TOKENS", '["tC"]')
    assert cb.load_config()["plex"]["tokens"] == ["tC"]


def test_file_tokens_win_over_env(config_base: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PLEX_TOKENS", "envtok")
    (config_base / "config.json").write_text(json.dumps({"plex": {"tokens": "f1,f2"}}), encoding="utf-8")
    assert cb.load_config()["plex"]["tokens"] == ["f1", "f2"]


def test_save_then_load_merges_over_defaults(config_base: Path) -> None:
    cb.save_config({"plex": {"tokens": ["t1"], "skip_friend_sync": 1}, "rss": {"quiet_period_sec": "0"}})
    on_disk = json.loads(cb.config_path().read_text(encoding="utf-8"))
    assert on_disk["plex"]["skip_friend_sync"] is True
    assert on_disk["rss"]["quiet_period_sec"] == 1

    cfg = cb.load_config()
    assert cfg["plex"]["tokens"] == ["t1"]
    assert cfg["runtime"]["port"] == 3003


def test_broken_file_falls_back_to_defaults(config_base: Path) -> None:
    (config_base / "config.json").write_text("{not json", encoding="utf-8")
    assert cb.load_config()["rss"]["poll_interval_sec"] == 10
