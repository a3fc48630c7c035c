import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

import config
import storage
from responses import success
from security import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])


def _read_image(file: UploadFile) -> bytes:
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(400, "Only image files are allowed")
    content = file.file.read()
    if not content:
        raise HTTPException(400, "Uploaded file is empty")
    if len(content) > storage.MAX_FILE_SIZE:
        raise HTTPException(400, "File too large. Maximum size is 10MB")
    return content


def _store(file: UploadFile, folder: str) -> Dict[str, Any]:
    content = _read_image(file)
    try:
        return storage.upload_image(content, file.filename or "upload", folder)
    except storage.StorageError as e:
        raise HTTPException(502 if storage.is_configured() else 500, str(e))


@router.post("/image")
def upload_image(image: Optional[UploadFile] = File(None), admin: Dict[str, Any] = Depends(require_admin)):
    if image is None:
        raise HTTPException(400, "No file uploaded")
    result = _store(image, config.CLOUDINARY_FOLDER)
    logger.info("Image %s uploaded by %s", result.get("public_id"), admin["_id"])
    return success(result, "Image uploaded successfully")


@router.post("/images")
def upload_images(images: Optional[List[UploadFile]] = File(None), admin: Dict[str, Any] = Depends(require_admin)):
    if not images:
        raise HTTPException(400, "No files uploaded")
    if len(images) > storage.MAX_FILES:
        raise HTTPException(400, f"Too many files. Maximum is {storage.MAX_FILES}")
    for image in images:
        if not (image.content_type or "").startswith("image/"):
            raise HTTPException(400, "Only image files are allowed")
    results = [_store(image, config.CLOUDINARY_FOLDER) for image in images]
    return success({"urls": [r["url"] for r in results], "images": results}, "Images uploaded successfully")


@router.post("/category-image")
def upload_category_image(image: Optional[UploadFile] = File(None), admin: Dict[str, Any] = Depends(require_admin)):
    if image is None:
        raise HTTPException(400, "No file uploaded")
    result = _store(image, f"{config.CLOUDINARY_FOLDER}/categories")
    return success(result, "Category image uploaded successfully")
