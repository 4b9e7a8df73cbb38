import io
from unittest.mock import AsyncMock, MagicMock

import gridfs.errors
import pytest
from bson.objectid import ObjectId
from PIL import Image

from nagarsathi.core.errors import ApiError
from nagarsathi.services import image_service


def _image_bytes(size, fmt="PNG"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(200, 50, 50)).save(buffer, format=fmt)
    return buffer.getvalue()


def test_small_image_is_kept_as_is():
    content = _image_bytes((300, 200))
    data, content_type = image_service.prepare_image(content, "small.png")
    assert data == content
    assert content_type == "image/png"


def test_large_image_is_downscaled():
    data, content_type = image_service.prepare_image(_image_bytes((2400, 1800), "JPEG"), "big.jpg")
    with Image.open(io.BytesIO(data)) as img:
        assert img.width <= 1200 and img.height <= 900
    assert content_type == "image/jpeg"


def test_gif_is_rejected():
    with pytest.raises(ApiError) as exc:
        image_service.prepare_image(_image_bytes((10, 10), "GIF"), "anim.gif")
    assert exc.value.status_code == 400


def test_garbage_is_rejected():
    with pytest.raises(ApiError):
        image_service.prepare_image(b"definitely not an image", "notes.txt")


def test_url_round_trip():
    file_id = ObjectId()
    assert image_service.file_id_from_url(image_service.image_url(file_id)) == file_id
    assert image_service.file_id_from_url("https://cdn.example/x.jpg") is None


@pytest.mark.asyncio
async def test_store_images_tags_folder(fs, user):
    upload = MagicMock()
    upload.filename = "pothole.png"
    upload.read = AsyncMock(return_value=_image_bytes((50, 50)))

    urls = await image_service.store_images(fs, [upload], image_service.ISSUE_FOLDER, user["_id"])

    assert len(urls) == 1 and urls[0].startswith("/api/images/")
    metadata = fs.upload_from_stream.await_args.kwargs["metadata"]
    assert metadata == {"contentType": "image/png", "folder": "issues", "uploadedBy": user["_id"]}


@pytest.mark.asyncio
async def test_store_images_validates_before_storing(fs, user):
    good, bad = MagicMock(), MagicMock()
    good.filename, bad.filename = "ok.png", "bad.png"
    good.read = AsyncMock(return_value=_image_bytes((50, 50)))
    bad.read = AsyncMock(return_value=b"nope")

    with pytest.raises(ApiError):
        await image_service.store_images(fs, [good, bad], image_service.ISSUE_FOLDER, user["_id"])
    fs.upload_from_stream.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_images_skips_missing_files(fs):
    present, missing = ObjectId(), ObjectId()
    fs.delete = AsyncMock(side_effect=[None, gridfs.errors.NoFile("gone")])

    deleted = await image_service.delete_images(
        fs, [image_service.image_url(present), image_service.image_url(missing), "https://elsewhere/x.png"]
    )

    assert deleted == 1
    assert fs.delete.await_count == 2


def test_missing_image_route_is_404(make_client, fs):
    fs.open_download_stream = AsyncMock(side_effect=gridfs.errors.NoFile("gone"))
    response = make_client().get(f"/api/images/{ObjectId()}")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Image not found"}


def test_image_route_streams_content(make_client, fs):
    grid_out = MagicMock()
    grid_out.metadata = {"contentType": "image/png"}
    grid_out.readchunk = AsyncMock(side_effect=[b"abc", b"def", b""])
    fs.open_download_stream = AsyncMock(return_value=grid_out)

    response = make_client().get(f"/api/images/{ObjectId()}")

    assert response.status_code == 200
    assert response.content == b"abcdef"
    assert response.headers["content-type"] == "image/png"


def test_decompression_bomb_is_rejected(monkeypatch):
    content = _image_bytes((300, 200))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
    with pytest.raises(ApiError) as exc:
        image_service.prepare_image(content, "bomb.png")
    assert exc.value.status_code == 400
