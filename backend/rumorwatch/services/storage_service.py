"""
Object store for report images.

Blobs are written under ``UPLOAD_DIR`` with a generated key and served back
from ``MEDIA_URL``; the returned URL is durable for the lifetime of the file.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from pathlib import Path

from rumorwatch.config import get_settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(filename: str | None) -> str:
    name = os.path.basename(filename or "") or "upload"
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "upload"
    return name[-100:]


def generate_key(filename: str | None, prefix: str = "reports") -> str:
    return f"{prefix}/{uuid.uuid4().hex}_{_safe_name(filename)}"


def upload_bytes(data: bytes, filename: str | None, *, prefix: str = "reports") -> str:
    """Store *data* under a generated key and return its public URL."""
    settings = get_settings()
    key = generate_key(filename, prefix)
    path = Path(settings.UPLOAD_DIR) / key
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(data)
    logger.info("Stored upload %s (%d bytes)", key, len(data))
    return f"{settings.MEDIA_URL.rstrip('/')}/{key}"


def delete_by_url(url: str) -> bool:
    """Remove a previously uploaded blob. Returns ``False`` if it was not ours."""
    settings = get_settings()
    prefix = settings.MEDIA_URL.rstrip("/") + "/"
    if not url or not url.startswith(prefix):
        return False
    root = Path(settings.UPLOAD_DIR).resolve()
    path = (root / url[len(prefix):]).resolve()
    if root not in path.parents:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
