# watchrelay.py
# WatchRelay - keeps Plex watchlists (own tokens and friends) mirrored in a local store
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import Any, Mapping

import uvicorn
from fastapi import FastAPI, Request

from _logging import log as BASE_LOG
from api import register as register_api
from providers.plex.client import PlexClient, PlexConfig
from services.progress import ProgressBus
from wr_platform.config_base import config_path, load_config, storage_path
from wr_platform.store import JsonStore
from wr_platform.watchlist import RssWorkflow, WatchlistService
from wr_platform.watchlist._types import WatchlistClient, WatchlistStore

_log = BASE_LOG.child("MAIN")

__all__ = ["create_app", "main"]


def _autostart(workflow: RssWorkflow) -> None:
    t = threading.Thread(target=workflow.start, name="RssWorkflowStart", daemon=True)
    t.start()


def create_app(
    cfg: Mapping[str, Any] | None = None,
    *,
    client: WatchlistClient | None = None,
    store: WatchlistStore | None = None,
) -> FastAPI:
    cfg = dict(cfg if cfg is not None else load_config())
    store = store if store is not None else JsonStore(storage_path(cfg))
    client = client if client is not None else PlexClient(PlexConfig.from_config(cfg))
    progress = ProgressBus()
    service = WatchlistService(client=client, store=store, config=cfg, progress=progress)
    workflow = RssWorkflow.from_config(service, cfg)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        if bool((cfg.get("rss") or {}).get("autostart")):
            _log.info("RSS workflow autostart enabled")
            _autostart(workflow)
        try:
            yield
        finally:
            workflow.stop()

    app = FastAPI(title="WatchRelay", lifespan=_lifespan)
    app.state.config = cfg
    app.state.store = store
    app.state.client = client
    app.state.progress = progress
    app.state.watchlist = service
    app.state.workflow = workflow

    register_api(app)

    @app.middleware("http")
    async def cache_headers_for_api(request: Request, call_next):
        resp = await call_next(request)
        if request.url.path.startswith("/api/"):
            resp.headers["Cache-Control"] = "no-store"
        return resp

    return app


def main(host: str | None = None, port: int | None = None) -> None:
    cfg = load_config()
    rt = dict(cfg.get("runtime") or {})
    host = host or str(rt.get("host") or "0.0.0.0")
    port = int(port or rt.get("port") or 3003)
    debug = bool(rt.get("debug"))

    print("\nWatchRelay running:")
    print(f"  Local:   http://127.0.0.1:{port}")
    print(f"  Bind:    {host}:{port}")
    print(f"  Config:  {config_path()} (JSON)")
    print(f"  Storage: {storage_path(cfg)}\n")

    uvicorn.run(
        create_app(cfg),
        host=host,
        port=port,
        log_level=("debug" if debug else "warning"),
    )


if __name__ == "__main__":
    main()
