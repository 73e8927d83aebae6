# app/routers/upload.py
"""
Customer photo upload (the source image of a future order).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from app.core.dependencies import get_storage_service
from app.core.exceptions import Print3DValidationError
from app.core.logging import get_logger
from app.schemas.order import UploadResponse
from app.services.storage_service import FOLDER_UPLOADS, StorageService
from app.utils.helpers import is_valid_file_size, is_valid_image_type

logger = get_logger(__name__)

router = APIRouter(prefix="/upload", tags=["upload"])


async def read_image(upload: UploadFile) -> bytes:
    """Validate type and size of an uploaded image and return its bytes."""
    if not is_valid_image_type(upload.content_type):
        raise Print3DValidationError(
            "Tip de fișier invalid. Sunt acceptate doar JPG, PNG și WEBP",
            "invalid_type",
            http_status=400,
        )
    data = await upload.read()
    if not is_valid_file_size(len(data)):
        raise Print3DValidationError(
            "Fișierul este prea mare. Dimensiunea maximă este 10MB",
            "file_too_large",
            http_status=400,
        )
    return data


@router.post("", response_model=UploadResponse)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    storage: StorageService = Depends(get_storage_service),
):
    if file is None or not file.filename:
        raise Print3DValidationError("Nu a fost trimis niciun fișier", "no_file", http_status=400)

    data = await read_image(file)
    url = await storage.put(data, file.filename, FOLDER_UPLOADS, file.content_type)
    logger.info("customer_photo_uploaded", filename=file.filename, size=len(data))
    return UploadResponse(url=url, filename=file.filename, size=len(data))
