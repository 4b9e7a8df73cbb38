"""
Issue and resolution photo storage in GridFS.

Uploads are decoded with Pillow, downscaled to fit 1200x900 and stored
under a folder tag. Stored images are addressed as ``/api/images/<fileId>``.
"""

import asyncio
import io
import logging
from typing import List, Optional, Tuple

import gridfs.errors
from bson.objectid import ObjectId
from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from nagarsathi.core.errors import ApiError

logger = logging.getLogger(__name__)

ISSUE_FOLDER = "issues"
RESOLUTION_FOLDER = "resolutions"

MAX_IMAGE_BYTES = 5 * 1024 * 1024
MAX_DIMENSIONS = (1200, 900)
ALLOWED_FORMATS = {"JPEG": "image/jpeg", "PNG": "image/png", "WEBP": "image/webp"}
IMAGE_URL_PREFIX = "/api/images/"


def image_url(file_id) -> str:
    return f"{IMAGE_URL_PREFIX}{file_id}"


def file_id_from_url(url: str) -> Optional[ObjectId]:
    if not url or not url.startswith(IMAGE_URL_PREFIX):
        return None
    candidate = url[len(IMAGE_URL_PREFIX):]
    return ObjectId(candidate) if ObjectId.is_valid(candidate) else None


def prepare_image(content: bytes, filename: str = "image") -> Tuple[bytes, str]:
    """Validate an uploaded image and downscale it. Returns (bytes, content type)."""
    if not content:
        raise ApiError(400, f"{filename} is empty")
    if len(content) > MAX_IMAGE_BYTES:
        raise ApiError(400, f"{filename} exceeds the 5MB limit")

    try:
        with Image.open(io.BytesIO(content)) as probe:
            probe.verify()
        with Image.open(io.BytesIO(content)) as img:
            image_format = img.format
            if image_format not in ALLOWED_FORMATS:
                raise ApiError(400, f"{filename}: only jpg, jpeg, png and webp images are allowed")

            if img.width <= MAX_DIMENSIONS[0] and img.height <= MAX_DIMENSIONS[1]:
                return content, ALLOWED_FORMATS[image_format]

            img.thumbnail(MAX_DIMENSIONS)
            if image_format == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format=image_format, quality=85)
            return buffer.getvalue(), ALLOWED_FORMATS[image_format]
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise ApiError(400, f"{filename} is not a valid image") from e


async def store_images(fs, uploads: List[UploadFile], folder: str, uploaded_by: ObjectId) -> List[str]:
    """Validate every upload first, then store them; returns image URLs."""
    prepared = []
    for upload in uploads:
        content = await upload.read()
        name = upload.filename or "image"
        data, content_type = await asyncio.to_thread(prepare_image, content, name)
        prepared.append((name, data, content_type))

    urls = []
    for name, data, content_type in prepared:
        file_id = await fs.upload_from_stream(
            name,
            data,
            metadata={"contentType": content_type, "folder": folder, "uploadedBy": uploaded_by},
        )
        urls.append(image_url(file_id))
    if urls:
        logger.info(f"🖼️ Stored {len(urls)} image(s) in {folder}")
    return urls


async def delete_images(fs, urls: List[str]) -> int:
    """Remove stored images; missing files are logged and skipped."""
    deleted = 0
    for url in urls or []:
        file_id = file_id_from_url(url)
        if file_id is None:
            continue
        try:
            await fs.delete(file_id)
            deleted += 1
        except gridfs.errors.NoFile:
            logger.warning(f"⚠️ Image {file_id} already missing from GridFS")
    return deleted


async def open_image(fs, file_id: ObjectId):
    """Open a stored image for streaming; raises gridfs.errors.NoFile if absent."""
    return await fs.open_download_stream(file_id)
