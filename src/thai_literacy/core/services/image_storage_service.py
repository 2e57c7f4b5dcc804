"""
Image storage for handwriting submissions

Writes decoded canvas images below ``<upload_path>/writing`` and hands back the
public URL under which the static file server exposes them.
"""

import base64
import binascii
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .logging import get_logging_service
from .settings_config_service import get_settings_service
from ..exceptions import StorageDegradedError
from ..models import IdLike, normalize_id

# Characters that must never reach a file name
_UNSAFE_NAME_CHARS = re.compile(r"[\\/:*?\"<>|\s]+")


@dataclass
class StoredImage:
    """Location of a persisted image"""

    path: str
    url: str


class ImageStorageService:
    """Local-disk image storage with a read-only mode"""

    SUBDIRECTORY = "writing"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or get_settings_service().get_storage_defaults()
        self.upload_path = Path(self.config["upload_path"])
        self.url_prefix = self.config.get("url_prefix", "/uploads").rstrip("/")
        self.read_only = bool(self.config.get("read_only", False))
        self.logger = get_logging_service().get_logger("storage")

    @staticmethod
    def decode_payload(encoded: str) -> bytes:
        """Decode the base64 part of a data URL"""
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise StorageDegradedError(f"Image payload is not valid base64: {e}") from e

    def build_filename(self, student_id: IdLike, target_word: str) -> str:
        timestamp = int(time.time() * 1000)
        suffix = secrets.token_hex(3)
        target = _UNSAFE_NAME_CHARS.sub("_", target_word.strip()) or "unknown"
        return f"writing_{normalize_id(student_id)}_{target}_{timestamp}_{suffix}.png"

    def save(
        self, student_id: IdLike, target_word: str, raw_bytes: bytes
    ) -> Optional[StoredImage]:
        """
        Persist an image.

        Returns:
            The stored location, or None when storage is read-only

        Raises:
            StorageDegradedError: If the file could not be written
        """
        if self.read_only:
            self.logger.debug("Read-only storage, image kept inline")
            return None

        directory = self.upload_path / self.SUBDIRECTORY
        filename = self.build_filename(student_id, target_word)
        file_path = directory / filename
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(raw_bytes)
        except OSError as e:
            raise StorageDegradedError(f"Failed to write {file_path}: {e}") from e

        self.logger.info(f"Image saved to {file_path}")
        return StoredImage(
            path=str(file_path),
            url=f"{self.url_prefix}/{self.SUBDIRECTORY}/{filename}",
        )
