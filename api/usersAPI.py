# /api/usersAPI.py
# WatchRelay - local users created for tokens and friends
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from _logging import log as BASE_LOG
from wr_platform.watchlist import WatchlistError

router = APIRouter(prefix="/api/users", tags=["users"])

_log = BASE_LOG.child("API")

_USER_FIELDS = (
    "id", "name", "email", "alias", "discord_id",
    "notify_email", "notify_discord", "can_sync", "created_at", "updated_at",
)


def _user_row(u: dict[str, Any], *extra: str) -> dict[str, Any]:
    return {k: u.get(k) for k in (*_USER_FIELDS, *extra)}


@router.get("/list")
def api_users_list(request: Request) -> Any:
    try:
        users = request.app.state.store.get_all_users()
    except WatchlistError as e:
        _log.error(f"Error retrieving users: {e}")
        return JSONResponse({"success": False, "message": "Unable to retrieve users"}, status_code=500)
    return {
        "success": True,
        "message": "Users retrieved successfully",
        "users": [_user_row(u) for u in users],
    }


@router.get("/list/with-counts")
def api_users_with_counts(request: Request) -> Any:
    try:
        users = request.app.state.store.get_users_with_watchlist_count()
    except WatchlistError as e:
        _log.error(f"Error retrieving users with counts: {e}")
        return JSONResponse({"success": False, "message": "Unable to retrieve users"}, status_code=500)
    return {
        "success": True,
        "message": "Users with watchlist counts retrieved successfully",
        "users": [_user_row(u, "watchlist_count") for u in users],
    }
