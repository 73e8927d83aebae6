"""
Blob storage on Cloudinary.

put() returns the public https URL; delete() takes that same URL back.
Images go up as resource_type "image", everything else (invoice PDFs) as "raw".
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Optional
from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader
import httpx

from app.core.config import settings
from app.core.exceptions import StorageError
from app.core.logging import get_logger

logger = get_logger(__name__)

FOLDER_INVOICES = "invoices"
FOLDER_VARIANTS = "variants"
FOLDER_UPLOADS = "uploads"

_SAFE_NAME = re.compile(r"[^a-zA-Z0-9.-]")
# /<cloud>/<resource_type>/upload/[<transformations>/][v<version>/]<public_id>
_DELIVERY_PATH = re.compile(r"^/[^/]+/(?P<rtype>image|raw|video)/upload/(?:v\d+/)?(?P<pid>.+)$")


def sanitize_filename(name: str) -> str:
    return _SAFE_NAME.sub("_", name or "file")


def parse_public_url(url: str) -> tuple[str, str]:
    """Return (resource_type, public_id) for a Cloudinary delivery URL."""
    m = _DELIVERY_PATH.match(urlparse(url).path)
    if not m:
        raise StorageError(f"URL de fisier invalid: {url}", "invalid_file_url")
    rtype, pid = m.group("rtype"), m.group("pid")
    if rtype == "image":
        pid = pid.rsplit(".", 1)[0]
    return rtype, pid


class StorageService:
    """Service for Cloudinary file management"""

    def __init__(self, root_folder: Optional[str] = None, http_timeout: float = 30.0):
        cfg = settings.cloudinary_settings
        cloudinary.config(
            cloud_name=cfg["cloud_name"],
            api_key=cfg["api_key"],
            api_secret=cfg["api_secret"],
            secure=True,
        )
        self.root_folder = (root_folder or settings.CLOUDINARY_ROOT_FOLDER).strip("/")
        self.http_timeout = http_timeout

    def _public_id(self, filename: str, folder: str, resource_type: str) -> str:
        name = sanitize_filename(filename)
        if resource_type == "image":
            name = name.rsplit(".", 1)[0]
        return f"{self.root_folder}/{folder}/{int(time.time() * 1000)}-{name}"

    async def put(
        self,
        data: bytes,
        filename: str,
        folder: str,
        content_type: str,
    ) -> str:
        resource_type = "image" if content_type.startswith("image/") else "raw"
        public_id = self._public_id(filename, folder, resource_type)
        try:
            result: dict[str, Any] = await asyncio.to_thread(
                cloudinary.uploader.upload,
                data,
                public_id=public_id,
                resource_type=resource_type,
                overwrite=False,
            )
        except Exception as e:
            logger.error("storage_upload_failed", public_id=public_id, error=str(e))
            raise StorageError(f"Incarcarea fisierului a esuat: {e}", "upload_failed") from e

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise StorageError("Raspuns invalid de la serviciul de stocare", "upload_failed")
        logger.info("storage_uploaded", public_id=public_id, bytes=len(data))
        return url

    async def delete(self, url: str) -> None:
        resource_type, public_id = parse_public_url(url)
        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.destroy, public_id, resource_type=resource_type
            )
        except Exception as e:
            logger.error("storage_delete_failed", public_id=public_id, error=str(e))
            raise StorageError(f"Stergerea fisierului a esuat: {e}", "delete_failed") from e

        if result.get("result") not in ("ok", "not found"):
            raise StorageError(f"Stergerea fisierului a esuat: {result}", "delete_failed")
        logger.info("storage_deleted", public_id=public_id)

    async def fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            logger.error("storage_fetch_failed", url=url, error=str(e))
            raise StorageError(f"Descarcarea fisierului a esuat: {e}", "fetch_failed") from e


__all__ = [
    "StorageService",
    "FOLDER_INVOICES",
    "FOLDER_VARIANTS",
    "FOLDER_UPLOADS",
    "parse_public_url",
    "sanitize_filename",
]
