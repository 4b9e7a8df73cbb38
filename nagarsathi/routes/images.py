import logging

import gridfs.errors
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from nagarsathi.core.database import get_fs_dependency
from nagarsathi.services.image_service import open_image
from nagarsathi.utils.validators import parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["Images"])


async def _iter_chunks(grid_out):
    while True:
        chunk = await grid_out.readchunk()
        if not chunk:
            break
        yield chunk


@router.get("/{file_id}")
async def get_image(file_id: str, fs=Depends(get_fs_dependency)):
    """Stream a stored issue or resolution photo from GridFS."""
    oid = parse_object_id(file_id, "image id")
    try:
        grid_out = await open_image(fs, oid)
    except gridfs.errors.NoFile:
        logger.warning(f"Image {file_id} not found in GridFS")
        raise HTTPException(status_code=404, detail="Image not found")

    metadata = grid_out.metadata or {}
    return StreamingResponse(
        _iter_chunks(grid_out),
        media_type=metadata.get("contentType", "image/jpeg"),
        headers={"Cache-Control": "public, max-age=86400"},
    )
