"""
Image uploads to Cloudinary through its Python SDK.
"""
import logging
from typing import Any, Dict

import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

import config

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = ["jpg", "jpeg", "png", "webp"]
TRANSFORMATION = [{"width": 1000, "height": 1000, "crop": "limit"}, {"quality": "auto"}]
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILES = 10


class StorageError(Exception):
    pass


def is_configured() -> bool:
    return bool(config.CLOUDINARY_CLOUD_NAME and config.CLOUDINARY_API_KEY and config.CLOUDINARY_API_SECRET)


def upload_image(content: bytes, filename: str, folder: str = None) -> Dict[str, Any]:
    if not is_configured():
        raise StorageError("Image storage is not configured")
    try:
        body = cloudinary.uploader.upload(
            content,
            folder=folder or config.CLOUDINARY_FOLDER,
            resource_type="image",
            allowed_formats=ALLOWED_FORMATS,
            transformation=TRANSFORMATION,
            cloud_name=config.CLOUDINARY_CLOUD_NAME,
            api_key=config.CLOUDINARY_API_KEY,
            api_secret=config.CLOUDINARY_API_SECRET,
        )
    except CloudinaryError as e:
        logger.error("Cloudinary upload of %s failed: %s", filename, e)
        raise StorageError("Image upload failed")
    return {
        "url": body.get("secure_url"),
        "public_id": body.get("public_id"),
        "width": body.get("width"),
        "height": body.get("height"),
        "bytes": body.get("bytes"),
        "format": body.get("format"),
    }
