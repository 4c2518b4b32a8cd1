"""Local object storage with public and HMAC-signed download URLs."""

import hashlib
import hmac
import logging
import os
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode, urlparse, unquote

from armour.config import settings

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/storage/v1/object/public/"
SIGNED_PREFIX = "/storage/object/"


class StorageService:
    """Stores objects as files under `root`."""

    def __init__(self, root: str = None, public_base_url: str = None, signing_secret: str = None):
        self.root = Path(root or settings.storage_dir).resolve()
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")
        self.signing_secret = signing_secret or settings.storage_signing_secret

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if target != self.root and self.root not in target.parents:
            raise ValueError(f"Path escapes storage root: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Write `data` at `path`; returns the object's public URL."""
        target = self._resolve(path)
        os.makedirs(target.parent, exist_ok=True)
        target.write_bytes(data)
        logger.info(f"[Storage] Stored {path} ({len(data)} bytes, {content_type})")
        return self.public_url(path)

    def read(self, path: str) -> bytes:
        """Raises FileNotFoundError when the object does not exist."""
        return self._resolve(path).read_bytes()

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}{PUBLIC_PREFIX}{path.lstrip('/')}"

    def path_from_url(self, url: str) -> Optional[str]:
        """Object path of a public URL, or of a bare path, or None."""
        if not url:
            return None
        parsed = urlparse(url)
        if not parsed.scheme:
            return unquote(url.lstrip("/"))
        if PUBLIC_PREFIX in parsed.path:
            return unquote(parsed.path.split(PUBLIC_PREFIX, 1)[1])
        if parsed.path.startswith(SIGNED_PREFIX):
            return unquote(parsed.path[len(SIGNED_PREFIX):])
        # Unknown layout: keep the last two segments (folder/file)
        segments = [s for s in parsed.path.split("/") if s]
        return "/".join(segments[-2:]) if segments else None

    def _signature(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode()
        return hmac.new(self.signing_secret.encode(), message, hashlib.sha256).hexdigest()

    def signed_url(self, path: str, expires_in: int = 3600) -> str:
        path = path.lstrip("/")
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        return f"{self.public_base_url}{SIGNED_PREFIX}{path}?{query}"

    def verify_signature(self, path: str, expires: int, signature: str) -> bool:
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(path.lstrip("/"), expires), signature or "")


def get_storage() -> StorageService:
    """Dependency to get the storage service."""
    return StorageService()
