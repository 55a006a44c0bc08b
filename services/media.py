"""Image uploads to Cloudinary through the cloudinary SDK."""
import io
import logging
from typing import Dict, Optional

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from errors import BadRequestError, MediaUploadError

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}


class CloudinaryMedia:
    def __init__(self, cloud_name: Optional[str], api_key: Optional[str], api_secret: Optional[str], timeout: int = 30):
        self.configured = bool(cloud_name and api_key and api_secret)
        self.timeout = timeout
        if self.configured:
            cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, content: bytes, filename: str, content_type: Optional[str], folder: str) -> Dict[str, str]:
        if not self.configured:
            raise MediaUploadError("media storage not configured")
        if content_type not in ALLOWED_TYPES:
            raise BadRequestError(f"Unsupported file type {content_type}")
        if len(content) > MAX_IMAGE_BYTES:
            raise BadRequestError("Images must be 5 MB or smaller")
        stream = io.BytesIO(content)
        stream.name = filename
        try:
            result = cloudinary.uploader.upload(stream, folder=folder, resource_type="image", timeout=self.timeout)
        except cloudinary.exceptions.Error as e:
            logger.error("Cloudinary upload of %s failed: %s", filename, e)
            raise MediaUploadError(str(e))
        return {"url": result["secure_url"], "public_id": result["public_id"]}
