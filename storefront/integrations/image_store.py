"""
Product and profile image storage on Cloudinary.
"""
import asyncio
from dataclasses import dataclass
from typing import List, Sequence

import cloudinary
import cloudinary.uploader
import structlog

from storefront.config import get_settings
from storefront.core.exceptions import ValidationError
from storefront.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")


class ImageUploadError(Exception):
    """Raised when the image store rejects an upload."""

    pass


@dataclass
class ImageFile:
    """An uploaded file, already read into memory."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def public_id_from_url(url: str) -> str:
    """
    Recover the Cloudinary public id (``folder/name``) from a delivery URL.

    >>> public_id_from_url("https://res.cloudinary.com/x/image/upload/v1/products/abc.webp")
    'products/abc'
    """
    return "/".join(url.split("/")[-2:]).rsplit(".", 1)[0]


class ImageStore:
    """Validates and uploads images, and removes them again on rollback."""

    def __init__(self) -> None:
        self.settings = get_settings()
        cloudinary.config(
            cloud_name=self.settings.cloudinary_cloud_name,
            api_key=self.settings.cloudinary_api_key,
            api_secret=self.settings.cloudinary_api_secret,
            secure=True,
        )

    def validate(self, files: Sequence[ImageFile]) -> None:
        """
        Check count, type and size before anything is uploaded.

        Raises:
            ValidationError: If any file is unacceptable
        """
        if len(files) > self.settings.max_product_images:
            raise ValidationError(
                f"At most {self.settings.max_product_images} images can be uploaded"
            )
        for f in files:
            if f.content_type not in ALLOWED_IMAGE_TYPES:
                raise ValidationError(f"Invalid file type: {f.filename}")
            if f.size > self.settings.max_image_bytes:
                raise ValidationError(f"File too large: {f.filename}")

    async def upload(self, image: ImageFile, folder: str) -> str:
        """Upload one image and return its HTTPS URL."""
        try:
            result = await asyncio.to_thread(
                cloudinary.uploader.upload,
                image.content,
                folder=folder,
                resource_type="image",
                format="webp",
                transformation=[{"width": 1600, "crop": "limit"}, {"quality": "auto"}],
            )
        except Exception as e:
            metrics.record_image_upload(folder, "failed")
            logger.error("image_upload_failed", filename=image.filename, error=str(e))
            raise ImageUploadError(f"Upload failed for {image.filename}") from e

        metrics.record_image_upload(folder, "success")
        return result["secure_url"]

    async def upload_many(self, images: Sequence[ImageFile], folder: str) -> List[str]:
        """
        Upload several images concurrently.

        If any upload fails, the ones that succeeded are destroyed before the
        error propagates.
        """
        self.validate(images)
        results = await asyncio.gather(
            *(self.upload(image, folder) for image in images), return_exceptions=True
        )
        urls = [r for r in results if isinstance(r, str)]
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            await self.destroy(urls)
            raise failures[0]
        return urls

    async def destroy(self, urls: Sequence[str]) -> None:
        """Best-effort removal of previously uploaded images."""
        for url in urls:
            if "res.cloudinary.com" not in url:
                continue
            public_id = public_id_from_url(url)
            try:
                await asyncio.to_thread(cloudinary.uploader.destroy, public_id)
            except Exception as e:
                logger.warning("image_cleanup_failed", public_id=public_id, error=str(e))
