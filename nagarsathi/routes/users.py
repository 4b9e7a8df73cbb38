"""
User Routes
Base path: /api/users
"""

import logging

from fastapi import APIRouter, Depends

from nagarsathi.core.auth import require_auth
from nagarsathi.core.database import get_db_dependency
from nagarsathi.core.errors import ApiError
from nagarsathi.models.user_model import ProfileUpdate
from nagarsathi.services import user_service
from nagarsathi.utils.helpers import serialize_doc
from nagarsathi.utils.validators import parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("/sync")
async def sync_user(current_user: dict = Depends(require_auth)):
    """Provision (if needed) and return the signed-in user."""
    return {"success": True, "data": serialize_doc(current_user)}


@router.get("/me")
async def get_me(current_user: dict = Depends(require_auth)):
    return {"success": True, "data": serialize_doc(current_user)}


@router.put("/me")
async def update_me(
    body: ProfileUpdate,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    user = await user_service.update_profile(db, current_user["_id"], body.model_dump())
    if not user:
        raise ApiError(404, "User not found")
    return {"success": True, "message": "Profile updated", "data": serialize_doc(user)}


@router.get("/{user_id}")
async def get_user_by_id(user_id: str, db=Depends(get_db_dependency)):
    """Public profile: name, avatar, join date and number of reported issues."""
    user = await user_service.get_public_profile(db, parse_object_id(user_id, "user id"))
    if not user:
        raise ApiError(404, "User not found")
    return {"success": True, "data": serialize_doc(user)}
