"""Access to uploaded files referenced by moderation jobs."""
from __future__ import annotations

import asyncio
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import quote

_URL_PREFIXES = ("http://", "https://", "blob:")


def is_external_url(image_ref: str) -> bool:
    """True for absolute URLs, False for storage-relative paths."""
    return image_ref.startswith(_URL_PREFIXES)


class Storage(Protocol):
    async def exists(self, path: str) -> bool: ...

    def public_url(self, path: str) -> str: ...


class LocalDiskStorage:
    """Files below ``root`` published under ``public_base_url``."""

    def __init__(self, root: str | Path, public_base_url: str):
        self._root = Path(root).resolve()
        self._public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> Path | None:
        candidate = (self._root / PurePosixPath(path.lstrip("/"))).resolve()
        # Paths escaping the storage root are treated as missing.
        if candidate != self._root and self._root not in candidate.parents:
            return None
        return candidate

    async def exists(self, path: str) -> bool:
        resolved = self._resolve(path)
        if resolved is None:
            return False
        return await asyncio.to_thread(resolved.is_file)

    def public_url(self, path: str) -> str:
        return f"{self._public_base_url}/{quote(path.lstrip('/'))}"
