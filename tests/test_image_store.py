"""
Unit tests for image validation and upload rollback.
"""
from typing import Any, Dict
from unittest.mock import patch

import pytest

from storefront.core.exceptions import ValidationError
from storefront.integrations.image_store import (
    ImageFile,
    ImageStore,
    ImageUploadError,
    public_id_from_url,
)


def image(name: str = "photo.png", content_type: str = "image/png", size: int = 16) -> ImageFile:
    return ImageFile(filename=name, content_type=content_type, content=b"x" * size)


def fake_upload(content: bytes, folder: str, **kwargs: Any) -> Dict[str, str]:
    if content.startswith(b"fail"):
        raise RuntimeError("upload rejected")
    return {"secure_url": f"https://res.cloudinary.com/demo/image/upload/v1/{folder}/ok.webp"}


class TestValidate:
    @pytest.mark.unit
    def test_accepts_supported_images(self) -> None:
        ImageStore().validate(
            [image(), image("b.jpg", "image/jpeg"), image("c.webp", "image/webp")]
        )

    @pytest.mark.unit
    def test_rejects_too_many(self) -> None:
        with pytest.raises(ValidationError, match="At most 5 images"):
            ImageStore().validate([image(f"{i}.png") for i in range(6)])

    @pytest.mark.unit
    def test_rejects_other_types(self) -> None:
        with pytest.raises(ValidationError, match="Invalid file type: notes.pdf"):
            ImageStore().validate([image("notes.pdf", "application/pdf")])

    @pytest.mark.unit
    def test_rejects_large_files(self) -> None:
        with pytest.raises(ValidationError, match="File too large"):
            ImageStore().validate([image(size=5 * 1024 * 1024 + 1)])


class TestUpload:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_upload_many(self) -> None:
        with patch("cloudinary.uploader.upload", side_effect=fake_upload) as upload:
            urls = await ImageStore().upload_many([image(), image("b.png")], "products")

        assert urls == [
            "https://res.cloudinary.com/demo/image/upload/v1/products/ok.webp",
        ] * 2
        assert upload.call_count == 2
        assert upload.call_args.kwargs["folder"] == "products"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_partial_failure_destroys_uploaded_images(self) -> None:
        files = [image(), ImageFile("bad.png", "image/png", b"fail")]
        with patch("cloudinary.uploader.upload", side_effect=fake_upload), patch(
            "cloudinary.uploader.destroy"
        ) as destroy:
            with pytest.raises(ImageUploadError, match="bad.png"):
                await ImageStore().upload_many(files, "products")

        destroy.assert_called_once_with("products/ok")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_destroy_skips_foreign_urls(self) -> None:
        with patch("cloudinary.uploader.destroy") as destroy:
            await ImageStore().destroy(["https://img.test/a.webp"])

        destroy.assert_not_called()

    @pytest.mark.unit
    def test_public_id_from_url(self) -> None:
        url = "https://res.cloudinary.com/demo/image/upload/v1712/profiles/abc123.webp"
        assert public_id_from_url(url) == "profiles/abc123"
