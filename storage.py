import logging
import mimetypes
import os
import re
from datetime import datetime, timezone
from typing import Dict, Optional

logger = logging.getLogger(__name__)

MAX_VIDEO_SIZE = 50 * 1024 * 1024
MAX_IMAGE_SIZE = 10 * 1024 * 1024

DEFAULT_BUCKET = "uploads"
DEFAULT_FOLDER = "home"

ALLOWED_MIME_PREFIXES = ("image/", "video/")
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/zip",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/x-hwp",
    "text/plain",
}

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


class UploadRejected(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def resolve_content_type(filename: str, content_type: Optional[str]) -> str:
    if not content_type or content_type == "application/octet-stream":
        guessed, _ = mimetypes.guess_type(filename)
        return guessed or "application/octet-stream"
    return content_type.lower()


def max_size_for(content_type: str) -> int:
    return MAX_VIDEO_SIZE if content_type.startswith("video/") else MAX_IMAGE_SIZE


def check_upload(filename: str, content_type: str, size: int) -> None:
    if not (content_type.startswith(ALLOWED_MIME_PREFIXES) or content_type in ALLOWED_MIME_TYPES):
        raise UploadRejected(400, f"허용되지 않는 파일 형식입니다: {content_type}")
    limit = max_size_for(content_type)
    if size > limit:
        kind = "영상" if limit == MAX_VIDEO_SIZE else "이미지"
        raise UploadRejected(
            413,
            f"{kind} 파일 크기가 너무 큽니다. 최대 {limit // (1024 * 1024)}MB까지 업로드 가능합니다. "
            f"(현재: {size / 1024 / 1024:.1f}MB)",
        )


def safe_segment(value: str) -> str:
    cleaned = _UNSAFE.sub("_", value.strip()).strip("._")
    return cleaned[:64] or "file"


class LocalStorage:
    """Bucket/path addressed storage on disk, published under ``base_url``."""

    def __init__(self, root: str, base_url: str = "/static"):
        self.root = root
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/{bucket}/{path}"

    def save(self, bucket: str, folder: str, filename: str, content: bytes) -> Dict[str, str]:
        bucket = safe_segment(bucket)
        folder = safe_segment(folder)
        name, ext = os.path.splitext(filename)
        ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
        stored = f"{ts}_{safe_segment(name)}{ext.lower()}"
        path = f"{folder}/{stored}"
        dest_dir = os.path.join(self.root, bucket, folder)
        os.makedirs(dest_dir, exist_ok=True)
        with open(os.path.join(dest_dir, stored), "wb") as f:
            f.write(content)
        logger.info("Stored %s (%d bytes) in bucket %s", path, len(content), bucket)
        return {"bucket": bucket, "path": path, "url": self.public_url(bucket, path)}
