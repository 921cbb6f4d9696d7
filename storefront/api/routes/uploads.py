"""Conversion of multipart uploads into ``ImageFile`` values."""
from typing import List, Optional, Sequence

from fastapi import UploadFile

from storefront.integrations.image_store import ImageFile


async def read_upload(upload: UploadFile) -> ImageFile:
    return ImageFile(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        content=await upload.read(),
    )


async def read_uploads(uploads: Optional[Sequence[UploadFile]]) -> List[ImageFile]:
    # Browsers send an empty part when no file was chosen
    return [await read_upload(u) for u in uploads or [] if u.filename]
