"""
Admin Routes
Base path: /api/admin - every endpoint requires the admin role.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from nagarsathi.core.auth import require_admin
from nagarsathi.core.database import get_db_dependency, get_fs_dependency
from nagarsathi.core.errors import ApiError
from nagarsathi.models.issue_model import MAX_RESOLUTION_IMAGES, IssueStatusUpdate
from nagarsathi.models.user_model import RoleUpdate
from nagarsathi.services import analytics_service, issue_service, user_service
from nagarsathi.utils.helpers import clamp_page, lenient_int, paginated, serialize_doc, serialize_docs
from nagarsathi.utils.validators import ISSUE_STATUSES, USER_ROLES, check_image_count, parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)

DEFAULT_USER_LIMIT = 20
MAX_USER_LIMIT = 100


@router.get("/issues")
async def get_all_issues(request: Request, db=Depends(get_db_dependency)):
    """Admin issue list: filter, search, sort, paginate, with creator emails."""
    issues, total, page, limit = await issue_service.list_admin_issues(db, request.query_params)
    return paginated(serialize_docs(issues), total, page, limit)


@router.put("/issues/{issue_id}/status")
async def update_issue_status(
    issue_id: str,
    body: IssueStatusUpdate,
    db=Depends(get_db_dependency),
    current_admin: dict = Depends(require_admin),
):
    if body.status not in ISSUE_STATUSES:
        raise ApiError(400, "Invalid status value")

    issue = await issue_service.update_status(
        db, parse_object_id(issue_id, "issue id"), current_admin, body.status, body.note
    )
    return {
        "success": True,
        "message": f"Issue status updated to {body.status}",
        "data": serialize_doc(issue),
    }


@router.post("/issues/{issue_id}/resolve")
async def resolve_issue(
    issue_id: str,
    note: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db=Depends(get_db_dependency),
    fs=Depends(get_fs_dependency),
    current_admin: dict = Depends(require_admin),
):
    """Mark an issue resolved with proof photos (multipart, up to 3 images)."""
    uploads = check_image_count(images, MAX_RESOLUTION_IMAGES)
    issue = await issue_service.resolve_issue(
        db, fs, parse_object_id(issue_id, "issue id"), current_admin, note, uploads
    )
    return {"success": True, "message": "Issue marked as resolved", "data": serialize_doc(issue)}


@router.get("/analytics")
async def get_analytics(
    days: Optional[str] = Query(None, description="Trailing window in days (default 30)"),
    db=Depends(get_db_dependency),
):
    data = await analytics_service.get_analytics(
        db, lenient_int(days, analytics_service.DEFAULT_WINDOW_DAYS)
    )
    return {"success": True, "data": serialize_doc(data)}


@router.get("/users")
async def get_all_users(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db=Depends(get_db_dependency),
):
    page_number = clamp_page(page)
    page_size = min(max(lenient_int(limit, DEFAULT_USER_LIMIT), 1), MAX_USER_LIMIT)
    users, total = await user_service.list_users(db, page_number, page_size)
    return paginated(serialize_docs(users), total, page_number, page_size)


@router.put("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    body: RoleUpdate,
    db=Depends(get_db_dependency),
    current_admin: dict = Depends(require_admin),
):
    if body.role not in USER_ROLES:
        raise ApiError(400, "Invalid role value")

    user = await user_service.update_role(db, parse_object_id(user_id, "user id"), body.role)
    if not user:
        raise ApiError(404, "User not found")

    logger.info(f"🔑 User {user_id} role -> {body.role} by {current_admin['_id']}")
    return {"success": True, "message": f"User role updated to {body.role}", "data": serialize_doc(user)}
