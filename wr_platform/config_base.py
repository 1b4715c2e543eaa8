# wr_platform/config_base.py
# WatchRelay - config.json resolution, defaults and atomic persistence
from __future__ import annotations

import copy
import json
import os
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Dict, List

# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config and data files.

    Priority:
      1) $CONFIG_BASE if set
      2) /config (when running in a container that mounts /config)
      3) Project root (one level up from this file)
    """
    env = os.getenv("CONFIG_BASE")
    if env:
        return Path(env)

    if Path("/app").exists():
        return Path("/config")

    return Path(__file__).resolve().parents[1]


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    "plex": {
        "tokens": [],                                   # Personal Plex tokens; token N becomes local user "tokenN"
        "skip_friend_sync": False,                      # Only generate/read the self RSS feed
        "timeout": 10.0,                                # HTTP timeout (seconds)
        "max_retries": 3,                               # Attempts per Plex request
        "watchlist_page_size": 100,                     # Discover / GraphQL page size
    },

    "rss": {
        "autostart": False,                             # Start the RSS workflow with the app
        "poll_interval_sec": 10,                        # RSS poll + refresh check cadence
        "quiet_period_sec": 60,                         # Quiet time after the last change before a full refresh
    },

    "storage": {
        "path": "",                                     # Empty = <CONFIG_BASE>/watchrelay_db
    },

    "runtime": {
        "debug": False,                                 # Enables DEBUG log lines
        "host": "0.0.0.0",
        "port": 3003,
    },
}


# ------------------------------------------------------------
# Helpers: paths, IO, merging, normalization
# ------------------------------------------------------------
def _cfg_file() -> Path:
    return CONFIG_BASE() / "config.json"


def config_path() -> Path:
    return _cfg_file()


def storage_path(cfg: Dict[str, Any] | None = None) -> Path:
    raw = str(((cfg or {}).get("storage") or {}).get("path") or "").strip()
    return Path(raw) if raw else CONFIG_BASE() / "watchrelay_db"


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    suffix = f".{time.time_ns()}.{os.getpid()}.{threading.get_ident()}.{secrets.token_hex(4)}.tmp"
    tmp = p.with_suffix(suffix)

    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _as_token_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                return _as_token_list(json.loads(s))
            except ValueError:
                pass
        return [t.strip() for t in s.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if str(t or "").strip()]
    return []


def _normalize(cfg: Dict[str, Any], *, env: bool = True) -> Dict[str, Any]:
    plex = cfg.setdefault("plex", {})
    plex["tokens"] = _as_token_list(plex.get("tokens"))
    if env and not plex["tokens"]:
        plex["tokens"] = _as_token_list(os.getenv("PLEX_TOKENS"))
    plex["skip_friend_sync"] = bool(plex.get("skip_friend_sync", False))

    rss = cfg.setdefault("rss", {})
    for key, default in (("poll_interval_sec", 10), ("quiet_period_sec", 60)):
        try:
            rss[key] = max(1, int(rss.get(key, default)))
        except (TypeError, ValueError):
            rss[key] = default
    return cfg


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """Read config.json merged over DEFAULT_CFG."""
    p = _cfg_file()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except Exception:
            user_cfg = {}
    return _normalize(_deep_merge(DEFAULT_CFG, user_cfg))


def save_config(cfg: Dict[str, Any]) -> None:
    """Write config.json atomically."""
    data = _normalize(copy.deepcopy(dict(cfg or {})), env=False)
    _write_json_atomic(_cfg_file(), data)


__all__ = ["CONFIG_BASE", "DEFAULT_CFG", "config_path", "storage_path", "load_config", "save_config"]
