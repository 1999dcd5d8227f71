"""Helpers for media URLs stored on profiles and movements.

Records persist the canonical ``/uploads/...`` path or a public storage URL;
what gets rendered is always absolute.
"""
from __future__ import annotations

import re
from typing import Mapping, Optional
from urllib.parse import urlparse

_ABSOLUTE_HTTP = re.compile(r"^https?://", re.IGNORECASE)
_UPLOADS = "/uploads/"


def _clean(value: object) -> str:
    return "" if value is None else str(value).strip()


def is_absolute_http(value: object) -> bool:
    return bool(_ABSOLUTE_HTTP.match(_clean(value)))


def to_uploads_path(value: object) -> Optional[str]:
    """Canonical ``/uploads/...`` path, or None when the value has none.

    ``http://localhost:8787/uploads/a.png``, ``uploads/a.png`` and
    ``/uploads/a.png`` all give ``/uploads/a.png``.
    """
    s = _clean(value)
    if not s:
        return None
    if s.startswith(_UPLOADS):
        return s
    if s.startswith("uploads/"):
        return f"/{s}"
    if is_absolute_http(s):
        try:
            path = urlparse(s).path or ""
        except ValueError:
            return None
        idx = path.find(_UPLOADS)
        return path[idx:] if idx >= 0 else None
    if s.startswith("/"):
        idx = s.find(_UPLOADS)
        if idx >= 0:
            return s[idx:]
    return None


def to_render_url(path_or_url: object, base_url: str) -> Optional[str]:
    """Absolute URL for display; absolute inputs are returned unchanged."""
    s = _clean(path_or_url)
    if not s:
        return None
    if is_absolute_http(s):
        return s
    base = base_url.rstrip("/")
    if s.startswith("/"):
        return f"{base}{s}"
    return f"{base}/{s}"


def uploads_path_to_public_url(
    value: object,
    *,
    public_storage_base: Optional[str],
    buckets: Mapping[str, str],
    kind_hint: Optional[str] = None,
) -> Optional[str]:
    """Rewrite a legacy ``/uploads/<rest>`` reference to ``<base>/<bucket>/<rest>``.

    Absolute URLs and values without an uploads path pass through. Returns
    None when a conversion is needed but no public storage base is known.
    Unknown ``kind_hint`` values use the movement-media bucket.
    """
    raw = _clean(value)
    if not raw:
        return None
    if is_absolute_http(raw):
        return raw

    cleaned = re.split(r"[?#]", raw, maxsplit=1)[0]
    if cleaned.startswith(_UPLOADS):
        uploads_path = cleaned
    elif cleaned.startswith("uploads/"):
        uploads_path = f"/{cleaned}"
    else:
        idx = cleaned.find(_UPLOADS)
        uploads_path = cleaned[idx:] if idx >= 0 else None

    if uploads_path is None:
        return raw

    base = _clean(public_storage_base).rstrip("/")
    if not base:
        return None

    rest = uploads_path[len(_UPLOADS):].lstrip("/")
    if not rest:
        return None

    kind = kind_hint if kind_hint in buckets else "movement-media"
    bucket = buckets.get(kind, "movement-media")
    return f"{base}/{bucket}/{rest}"
