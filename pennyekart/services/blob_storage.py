# pennyekart/services/blob_storage.py
from __future__ import annotations

import logging
import secrets
import string
import time
from pathlib import Path
from typing import Optional, Tuple

from werkzeug.utils import secure_filename

from pennyekart.config import Config
from pennyekart.observability import increment_counter

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits


def generate_file_name(original_name: str, now_ms: Optional[int] = None) -> str:
    """Collision-resistant name: '<epoch ms>-<random>.<ext>'."""
    extension = Path(original_name or "").suffix.lstrip(".").lower()
    stamp = int(time.time() * 1000) if now_ms is None else now_ms
    token = "".join(secrets.choice(_ALPHABET) for _ in range(10))
    return f"{stamp}-{token}.{extension}" if extension else f"{stamp}-{token}"


class BlobStore:
    """Public image storage on the local filesystem, one directory per bucket."""

    def __init__(
        self,
        root: Optional[Path] = None,
        public_base_url: Optional[str] = None,
        allowed_extensions: Optional[Tuple[str, ...]] = None,
        max_bytes: Optional[int] = None,
    ):
        self.root = Path(root or Config.BLOB_STORAGE_DIR)
        self.public_base_url = (public_base_url or Config.BLOB_PUBLIC_BASE_URL).rstrip("/")
        self.allowed_extensions = tuple(allowed_extensions or Config.BLOB_ALLOWED_EXTENSIONS)
        self.max_bytes = Config.BLOB_MAX_BYTES if max_bytes is None else max_bytes

    @staticmethod
    def _bucket_name(bucket: str) -> str:
        name = secure_filename(bucket or "")
        if not name:
            raise ValueError("Bucket name is required")
        return name

    def _path_for(self, bucket: str, file_name: str) -> Path:
        safe_name = secure_filename(file_name or "")
        if not safe_name:
            raise ValueError("File name is required")
        return self.root / self._bucket_name(bucket) / safe_name

    def upload(self, bucket: str, file_name: str, data: bytes) -> Tuple[bool, str, Optional[str]]:
        """Write the object; returns the stored name as payload."""
        try:
            path = self._path_for(bucket, file_name)
        except ValueError as exc:
            return False, str(exc), None
        if len(data) > self.max_bytes:
            return False, f"File exceeds {self.max_bytes} bytes", None

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "xb") as handle:
                handle.write(data)
        except OSError as e:
            logger.error(f"Error writing blob {path}: {e}", extra={"bucket": bucket})
            return False, f"Upload failed: {e}", None

        increment_counter("blob_uploads_total", labels={"bucket": path.parent.name})
        return True, "Uploaded", path.name

    def get_public_url(self, bucket: str, file_name: str) -> str:
        path = self._path_for(bucket, file_name)
        return f"{self.public_base_url}/{path.parent.name}/{path.name}"

    def upload_image(self, bucket: str, original_name: str, data: bytes) -> Tuple[bool, str, Optional[str]]:
        """Admin image upload: returns the public URL on success."""
        extension = Path(original_name or "").suffix.lstrip(".").lower()
        if extension not in self.allowed_extensions:
            return False, "Only image files can be uploaded", None

        success, message, stored_name = self.upload(bucket, generate_file_name(original_name), data)
        if not success:
            return False, message, None
        url = self.get_public_url(bucket, stored_name)
        logger.info("Uploaded image %s", url, extra={"bucket": bucket})
        return True, "Image uploaded", url
