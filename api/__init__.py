from __future__ import annotations

from fastapi import FastAPI

from .usersAPI import router as users_router
from .watchlistAPI import router as watchlist_router

__all__ = [
    "watchlist_router",
    "users_router",
    "register",
]

def register(app: FastAPI) -> None:
    app.include_router(watchlist_router)
    app.include_router(users_router)
