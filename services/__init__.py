# services/__init__.py
from __future__ import annotations

from .progress import ProgressBus, format_sse

__all__ = ["ProgressBus", "format_sse"]
