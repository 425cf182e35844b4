"""Conversion of uploaded contact photos into storable bytes."""

from dataclasses import dataclass

from fastapi import UploadFile

from .core import get_settings


class ImageRejected(ValueError):
    """Raised when an upload is not an acceptable image."""


@dataclass(frozen=True)
class StoredImage:
    """Photo bytes together with the content type they were uploaded as."""

    data: bytes
    content_type: str


async def to_stored_image(upload: UploadFile | None) -> StoredImage | None:
    """
    Read an uploaded file into a ``StoredImage``.

    Args:
        upload (UploadFile | None): File field from a multipart form.

    Raises:
        ImageRejected: If the file is not an image or is too large.

    Returns:
        StoredImage | None: The image, or ``None`` when nothing was uploaded.
    """
    if upload is None or not upload.filename:
        return None

    limit = get_settings().MAX_IMAGE_BYTES
    data = await upload.read(limit + 1)
    if not data:
        return None

    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise ImageRejected("Only image files can be uploaded")
    if len(data) > limit:
        raise ImageRejected(f"Images must be at most {limit // 1024} KB")
    return StoredImage(data=data, content_type=content_type)
