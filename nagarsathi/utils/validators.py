import re
from typing import List, Optional

from bson.objectid import ObjectId
from fastapi import UploadFile

from nagarsathi.core.errors import ApiError

ISSUE_CATEGORIES = ("pothole", "garbage", "water_leak", "streetlight", "drainage", "road_damage", "other")
ISSUE_STATUSES = ("reported", "in_progress", "resolved")
USER_ROLES = ("user", "admin")

_REGION_SEPARATORS = re.compile(r"[\s\-]+")


def parse_object_id(value: str, label: str = "id") -> ObjectId:
    """Parse a path/body id, raising a 400 instead of bson's InvalidId."""
    if not value or not ObjectId.is_valid(value):
        raise ApiError(400, f"Invalid {label}")
    return ObjectId(value)


def normalize_region(value: Optional[str]) -> str:
    """Normalise a state/district name: ``"Delhi NCT"`` -> ``"delhi_nct"``."""
    if not value:
        return ""
    return _REGION_SEPARATORS.sub("_", value.strip().lower())


def check_image_count(images: Optional[List[UploadFile]], limit: int) -> List[UploadFile]:
    """Drop empty multipart parts and reject more than ``limit`` files."""
    images = [image for image in images or [] if image.filename]
    if len(images) > limit:
        raise ApiError(400, f"A maximum of {limit} images is allowed")
    return images
