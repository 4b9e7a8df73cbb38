"""
Issue Routes
Base path: /api/issues
"""

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError

from nagarsathi.core.auth import optional_auth, require_auth
from nagarsathi.core.database import get_db_dependency, get_fs_dependency
from nagarsathi.core.errors import ApiError, flatten_validation_errors
from nagarsathi.models.issue_model import MAX_ISSUE_IMAGES, IssueCreate, IssueUpdate
from nagarsathi.services import issue_service
from nagarsathi.utils.helpers import paginated, serialize_doc, serialize_docs
from nagarsathi.utils.validators import check_image_count, parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["Issues"])


def _parse_location(raw: str) -> Dict[str, Any]:
    try:
        location = json.loads(raw)
    except json.JSONDecodeError:
        raise ApiError(400, "Invalid location format")
    if not isinstance(location, dict):
        raise ApiError(400, "Invalid location format")
    return location


@router.get("")
async def get_issues(
    request: Request,
    db=Depends(get_db_dependency),
    current_user: Optional[dict] = Depends(optional_auth),
):
    """
    List issues with filtering, search, radius search, sorting and pagination.

    Query params: category, status, state (comma separated), district,
    search, lat/lng/radius (km), sort, fields, page, limit.
    """
    issues, total, page, limit = await issue_service.list_issues(
        db, request.query_params, viewer=current_user
    )
    return paginated(serialize_docs(issues), total, page, limit)


@router.get("/map")
async def get_issues_for_map(request: Request, db=Depends(get_db_dependency)):
    """Minimal issue data for map markers, capped at 500."""
    issues = await issue_service.list_map_issues(db, request.query_params)
    return {"success": True, "count": len(issues), "data": serialize_docs(issues)}


@router.get("/filter-counts")
async def get_filter_counts(db=Depends(get_db_dependency)):
    """Issue counts per state, district, category and status."""
    counts = await issue_service.filter_counts(db)
    return {"success": True, "data": counts}


@router.get("/user/my-issues")
async def get_my_issues(
    request: Request,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    issues, total, page, limit = await issue_service.list_user_issues(db, current_user, request.query_params)
    return paginated(serialize_docs(issues), total, page, limit)


@router.get("/{issue_id}")
async def get_issue_by_id(
    issue_id: str,
    db=Depends(get_db_dependency),
    current_user: Optional[dict] = Depends(optional_auth),
):
    issue = await issue_service.get_issue(db, parse_object_id(issue_id, "issue id"), viewer=current_user)
    return {"success": True, "data": serialize_doc(issue)}


@router.post("", status_code=201)
async def create_issue(
    title: str = Form(...),
    description: str = Form(...),
    category: str = Form(...),
    location: str = Form(...),
    state: Optional[str] = Form(None),
    district: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db=Depends(get_db_dependency),
    fs=Depends(get_fs_dependency),
    current_user: dict = Depends(require_auth),
):
    """Report a new issue (multipart, up to 5 images)."""
    uploads = check_image_count(images, MAX_ISSUE_IMAGES)
    try:
        data = IssueCreate(
            title=title,
            description=description,
            category=category,
            location=_parse_location(location),
            state=state,
            district=district,
        )
    except ValidationError as e:
        raise ApiError(400, "Validation failed", flatten_validation_errors(e.errors()))

    issue = await issue_service.create_issue(db, fs, current_user, data, uploads)
    return {"success": True, "message": "Issue reported successfully", "data": serialize_doc(issue)}


@router.put("/{issue_id}")
async def update_issue(
    issue_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    db=Depends(get_db_dependency),
    fs=Depends(get_fs_dependency),
    current_user: dict = Depends(require_auth),
):
    """Owner-only update of title, description, category and images."""
    uploads = check_image_count(images, MAX_ISSUE_IMAGES)
    try:
        changes = IssueUpdate(title=title or None, description=description or None, category=category or None)
    except ValidationError as e:
        raise ApiError(400, "Validation failed", flatten_validation_errors(e.errors()))

    issue = await issue_service.update_issue(
        db, fs, parse_object_id(issue_id, "issue id"), current_user, changes, uploads
    )
    return {"success": True, "message": "Issue updated successfully", "data": serialize_doc(issue)}


@router.delete("/{issue_id}")
async def delete_issue(
    issue_id: str,
    db=Depends(get_db_dependency),
    fs=Depends(get_fs_dependency),
    current_user: dict = Depends(require_auth),
):
    """Delete an issue (owner or admin), cascading to its comments and upvotes."""
    await issue_service.delete_issue(db, fs, parse_object_id(issue_id, "issue id"), current_user)
    return {"success": True, "message": "Issue deleted successfully"}
