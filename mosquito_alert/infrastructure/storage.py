"""
Cloudinary storage service for report photos.

Uploads images with Cloudinary's signed upload API over httpx, and falls back
to mock URLs when no credentials are configured (local development).

Usage:
    from ..infrastructure.storage import get_storage_service

    storage = get_storage_service()
    public_url, public_id = await storage.upload_image(content, filename, content_type, user_id)
"""
import hashlib
import io
import logging
import time
import uuid
from typing import Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from ..core.config import settings
from ..domain.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}


def validate_image(content: bytes, content_type: Optional[str], max_bytes: int) -> None:
    """
    Reject anything that is not a reasonably sized image.

    Raises:
        ValidationError: on wrong type, oversize, or undecodable content
    """
    if not content:
        raise ValidationError("Image upload is required. Please upload an image.", field="image")

    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed!", field="image")

    if len(content) > max_bytes:
        raise ValidationError(
            f"Image too large: maximum size is {max_bytes // (1024 * 1024)} MB", field="image"
        )

    try:
        with Image.open(io.BytesIO(content)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Rejected undecodable upload: {e}")
        raise ValidationError("Uploaded file is not a valid image", field="image")

    if image_format not in ALLOWED_FORMATS:
        raise ValidationError(
            f"Unsupported image format {image_format}; use jpg, png, gif or webp", field="image"
        )


class CloudinaryStorageService:
    """
    Handles report photo uploads to Cloudinary.

    - Signs each request with the API secret (never sent over the wire)
    - Stores photos under one folder, named per user to avoid collisions
    - Returns mock URLs when not configured
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.cloud_name = settings.CLOUDINARY_CLOUD_NAME
        self.api_key = settings.CLOUDINARY_API_KEY
        self.api_secret = settings.CLOUDINARY_API_SECRET
        self.folder = settings.CLOUDINARY_FOLDER
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    @property
    def base_url(self) -> str:
        return f"https://api.cloudinary.com/v1_1/{self.cloud_name}/image"

    def _sign(self, params: dict) -> str:
        """Cloudinary signature: sha1 of the sorted 'k=v&k=v' params followed by the secret."""
        to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1(f"{to_sign}{self.api_secret}".encode("utf-8")).hexdigest()

    def _public_id(self, user_id: str) -> str:
        return f"{user_id}_{uuid.uuid4().hex[:12]}"

    async def upload_image(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        user_id: str
    ) -> Tuple[str, str]:
        """
        Upload an image.

        Args:
            content: Image bytes
            filename: Original filename
            content_type: MIME type (e.g., image/jpeg)
            user_id: Owner id, used in the public id

        Returns:
            Tuple of (secure_url, public_id)

        Raises:
            StorageError: if the upload fails
        """
        if not self.is_configured:
            logger.warning("Cloudinary storage not configured, returning mock URL")
            public_id = f"mock/{self._public_id(user_id)}"
            return f"https://mock-storage.local/{public_id}", public_id

        params = {
            "folder": self.folder,
            "public_id": self._public_id(user_id),
            "timestamp": int(time.time()),
        }
        data = {**params, "api_key": self.api_key, "signature": self._sign(params)}

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/upload",
                    data=data,
                    files={"file": (filename or "report.jpg", content, content_type)},
                    timeout=30.0
                )
        except httpx.TimeoutException:
            logger.error(f"Cloudinary upload timed out for {filename}")
            raise StorageError("Upload timed out after 30 seconds")
        except httpx.RequestError as e:
            logger.error(f"Cloudinary upload request failed: {e}")
            raise StorageError(f"Request failed: {e}")

        if response.status_code != 200:
            error_detail = response.text[:500] if response.text else "Unknown error"
            logger.error(f"Cloudinary upload failed: {response.status_code} - {error_detail}")
            raise StorageError(f"Upload failed with status {response.status_code}")

        try:
            body = response.json()
            secure_url, public_id = body["secure_url"], body["public_id"]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Cloudinary upload returned a malformed response: {e}")
            raise StorageError("Upload returned a malformed response")

        logger.info(f"Uploaded image to Cloudinary: {public_id}")
        return secure_url, public_id

    async def delete_image(self, public_id: str) -> bool:
        """
        Delete an image; used to clean up after a rejected submission.

        Returns:
            True if deleted (or nothing to delete), False otherwise
        """
        if not self.is_configured or public_id.startswith("mock/"):
            logger.debug("Mock image, skipping delete")
            return True

        params = {"public_id": public_id, "timestamp": int(time.time())}
        data = {**params, "api_key": self.api_key, "signature": self._sign(params)}

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/destroy", data=data, timeout=10.0)
        except httpx.HTTPError as e:
            logger.warning(f"Error deleting image {public_id}: {e}")
            return False

        success = response.status_code == 200
        if success:
            logger.info(f"Deleted image from Cloudinary: {public_id}")
        else:
            logger.warning(f"Failed to delete {public_id}: {response.status_code}")
        return success


# Singleton instance
_storage_service: Optional[CloudinaryStorageService] = None


def get_storage_service() -> CloudinaryStorageService:
    """Get or create storage service singleton instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = CloudinaryStorageService()
    return _storage_service
