# /wr_platform/id_map.py
# GUID handling shared by the reconciler, the RSS detector and the pending matcher.
# - Decode list fields stored either as arrays or JSON-encoded strings.
# - Normalize Plex GUID variants so the same content compares equal.
# - Any-element GUID intersection (content identity across users).
# - Hashable fingerprints for value-level de-duplication.

from __future__ import annotations

import json
import re
from typing import Any, Iterable, List, Mapping, Optional, Set, Tuple

__all__ = [
    "decode_list",
    "normalize_guid",
    "guids_of",
    "genres_of",
    "guid_set",
    "any_guid_overlap",
    "norm_type",
    "fingerprint",
]

# --- tiny utils ---------------------------------------------------------------

_CLEAN_SENTINELS = {"none", "null", "nan", "undefined", ""}


def _norm_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    if s.lower() in _CLEAN_SENTINELS:
        return None
    return s


def decode_list(value: Any) -> List[str]:
    """List fields arrive as a list, a JSON-encoded list or a single bare string."""
    if value is None:
        return []
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return []
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except ValueError:
                return [s]
            return decode_list(parsed)
        return [s]
    if isinstance(value, (list, tuple, set, frozenset)):
        out: List[str] = []
        for v in value:
            n = _norm_str(v)
            if n is not None:
                out.append(n)
        return out
    n = _norm_str(value)
    return [n] if n else []


def norm_type(t: Any) -> str:
    x = (str(t or "")).strip().lower()
    if x in ("movies", "movie"):
        return "movie"
    if x in ("shows", "show", "series", "tv"):
        return "show"
    return x


# --- Plex GUID variants --------------------------------------------------------

# Legacy agent GUIDs collapse onto the modern scheme://id form.
_GUID_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"^com\.plexapp\.agents\.imdb://(?P<id>tt\d+)", re.I), "imdb"),
    (re.compile(r"^com\.plexapp\.agents\.themoviedb://(?P<id>\d+)", re.I), "tmdb"),
    (re.compile(r"^com\.plexapp\.agents\.thetvdb://(?P<id>\d+)", re.I), "tvdb"),
    (re.compile(r"^imdb://(?:title/)?(?P<id>tt\d+)", re.I), "imdb"),
    (re.compile(r"^tmdb://(?:(?:movie|show|tv)/)?(?P<id>\d+)", re.I), "tmdb"),
    (re.compile(r"^tvdb://(?:(?:series|show|tv)/)?(?P<id>\d+)", re.I), "tvdb"),
)


def normalize_guid(guid: Any) -> Optional[str]:
    g = _norm_str(guid)
    if not g:
        return None
    g = g.split("?", 1)[0]
    for rx, label in _GUID_PATTERNS:
        m = rx.search(g)
        if m:
            return f"{label}://{m.group('id').lower()}"
    if "://" in g:
        scheme, ident = g.split("://", 1)
        return f"{scheme.lower()}://{ident}"
    return g


def guids_of(item: Mapping[str, Any]) -> List[str]:
    """Raw guids of an item in stored order (list or JSON string form)."""
    return decode_list((item or {}).get("guids"))


def genres_of(item: Mapping[str, Any]) -> List[str]:
    return decode_list((item or {}).get("genres"))


def guid_set(item_or_guids: Any) -> Set[str]:
    raw = guids_of(item_or_guids) if isinstance(item_or_guids, Mapping) else decode_list(item_or_guids)
    out: Set[str] = set()
    for g in raw:
        n = normalize_guid(g)
        if n:
            out.add(n)
    return out


def any_guid_overlap(a: Any, b: Any) -> bool:
    sa, sb = guid_set(a), guid_set(b)
    return bool(sa and sb and not sa.isdisjoint(sb))


def fingerprint(item: Mapping[str, Any], fields: Iterable[str] = ("key", "title", "type", "thumb")) -> Tuple[Any, ...]:
    """Hashable value identity: scalar fields plus guid/genre tuples."""
    scalars = tuple(_norm_str(item.get(f)) for f in fields)
    return scalars + (tuple(guids_of(item)), tuple(genres_of(item)))
