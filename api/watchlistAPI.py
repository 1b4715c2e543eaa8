# /api/watchlistAPI.py
# WatchRelay - Plex watchlist sync, RSS feeds and workflow control
# Copyright (c) 2025-2026 WatchRelay
from __future__ import annotations

import asyncio
from typing import Any

import requests
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from _logging import log as BASE_LOG
from services.progress import ProgressBus, format_sse
from wr_platform.watchlist import ConfigurationError, RssWorkflow, WatchlistError, WatchlistService

router = APIRouter(prefix="/api/plex", tags=["plex"])

_log = BASE_LOG.child("API")


class WorkflowStatus(BaseModel):
    running: bool
    refreshing: bool = False
    queue_size: int = 0
    snapshots: dict[str, int] = {}
    started_at: float | None = None
    last_refresh_at: float | None = None
    last_refresh_error: str | None = None


def _service(request: Request) -> WatchlistService:
    return request.app.state.watchlist


def _workflow(request: Request) -> RssWorkflow:
    return request.app.state.workflow


def _error(e: Exception, fallback: str) -> JSONResponse:
    if isinstance(e, ConfigurationError):
        return JSONResponse({"error": str(e)}, status_code=400)
    if isinstance(e, WatchlistError):
        _log.error(f"{fallback}: {e}")
        return JSONResponse({"error": str(e) or fallback}, status_code=500)
    _log.error(f"{fallback}: {type(e).__name__}: {e}")
    return JSONResponse({"error": fallback}, status_code=500)


@router.get("/ping")
def api_ping(request: Request) -> Any:
    try:
        ok = _service(request).ping_plex()
    except (WatchlistError, requests.RequestException) as e:
        return _error(e, "Unable to reach Plex")
    if not ok:
        return JSONResponse({"success": False, "message": "Plex connection failed"}, status_code=502)
    return {"success": True, "message": "Plex connection successful"}


@router.get("/self-watchlist-token")
def api_self_watchlist(request: Request) -> Any:
    try:
        return _service(request).get_self_watchlist()
    except (WatchlistError, requests.RequestException) as e:
        return _error(e, "Unable to fetch watchlist items")


@router.get("/others-watchlist-token")
def api_others_watchlist(request: Request) -> Any:
    try:
        return _service(request).get_others_watchlists()
    except (WatchlistError, requests.RequestException) as e:
        return _error(e, "Unable to fetch others' watchlist items")


@router.get("/generate-rss-feeds")
def api_generate_rss_feeds(request: Request) -> Any:
    try:
        res = _service(request).generate_and_save_rss_feeds()
    except (WatchlistError, requests.RequestException, RuntimeError) as e:
        return _error(e, "Unable to fetch watchlist URLs")
    if "error" in res:
        return JSONResponse(res, status_code=500)
    return res


@router.get("/parse-rss")
def api_parse_rss(request: Request) -> Any:
    try:
        return _service(request).process_rss_watchlists()
    except (WatchlistError, requests.RequestException, RuntimeError) as e:
        return _error(e, "Unable to fetch RSS watchlists")


@router.get("/genres")
def api_genres(request: Request) -> Any:
    try:
        return {"genres": request.app.state.store.get_all_genres()}
    except WatchlistError as e:
        return _error(e, "Unable to fetch genres")


@router.post("/sync")
def api_sync(request: Request) -> Any:
    try:
        return _service(request).sync_all()
    except (WatchlistError, requests.RequestException) as e:
        return _error(e, "Watchlist sync failed")


@router.post("/workflow/start")
def api_workflow_start(request: Request) -> Any:
    wf = _workflow(request)
    ok = wf.start()
    return {"ok": ok, **WorkflowStatus(**_status_fields(wf)).model_dump()}


@router.post("/workflow/stop")
def api_workflow_stop(request: Request) -> Any:
    wf = _workflow(request)
    wf.stop()
    return {"ok": True, **WorkflowStatus(**_status_fields(wf)).model_dump()}


@router.get("/workflow/status", response_model=WorkflowStatus)
def api_workflow_status(request: Request) -> WorkflowStatus:
    return WorkflowStatus(**_status_fields(_workflow(request)))


def _status_fields(wf: RssWorkflow) -> dict[str, Any]:
    st = wf.status()
    return {k: st.get(k) for k in WorkflowStatus.model_fields if k in st}


@router.get("/progress")
async def api_progress_stream(request: Request) -> StreamingResponse:
    bus: ProgressBus = request.app.state.progress
    q = bus.subscribe()

    async def agen():
        try:
            yield ": connected\n\n"
            while True:
                if await request.is_disconnected():
                    break
                for evt in bus.drain(q, timeout=0):
                    yield format_sse(evt)
                await asyncio.sleep(0.25)
        finally:
            bus.unsubscribe(q)

    return StreamingResponse(agen(), media_type="text/event-stream")
