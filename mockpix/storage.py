"""
storage.py — Where generated images end up.

Keys follow ``generated-images/<YYYY-MM-DD>/<8 hex>.<ext>``; the hash comes
from the filename plus the current time, so collisions are unlikely but not
guaranteed impossible.

LocalStorage writes under a root directory and builds URLs from a public
base URL (and an optional CDN base URL). Point the public base at a bucket
that syncs the directory, or leave it unset to get file:// URLs.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from .errors import StorageError

logger = logging.getLogger(__name__)

KEY_PREFIX = "generated-images"


@dataclass
class UploadResult:
    url: str
    key: str
    cdn_url: Optional[str] = None


class ImageStorage(Protocol):
    async def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        ...


def extension_for(content_type: str) -> str:
    ext = mimetypes.guess_extension(content_type or "") or ".png"
    return ".jpg" if ext in (".jpe", ".jpeg") else ext


def make_storage_key(filename: str, content_type: str = "image/png", now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    digest = hashlib.sha256(f"{filename}{now.isoformat()}".encode("utf-8")).hexdigest()[:8]
    return f"{KEY_PREFIX}/{now.date().isoformat()}/{digest}{extension_for(content_type)}"


def _join_url(base: str, key: str) -> str:
    return f"{base.rstrip('/')}/{key}"


class LocalStorage:
    """Filesystem-backed ImageStorage."""

    def __init__(
        self,
        root_dir: Path,
        public_base_url: Optional[str] = None,
        cdn_base_url: Optional[str] = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url
        self.cdn_base_url = cdn_base_url

    async def upload(self, data: bytes, key: str, content_type: str = "image/png") -> UploadResult:
        if not data:
            raise StorageError(f"Refusing to store empty image at {key}")
        target = self.root_dir / key
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, target, data)
        except OSError as exc:
            raise StorageError(f"Could not write {target}: {exc}") from exc

        if self.public_base_url:
            url = _join_url(self.public_base_url, key)
        else:
            url = target.resolve().as_uri()
        cdn_url = _join_url(self.cdn_base_url, key) if self.cdn_base_url else None

        logger.debug("Stored %s (%d bytes, %s)", key, len(data), content_type)
        return UploadResult(url=url, key=key, cdn_url=cdn_url)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
