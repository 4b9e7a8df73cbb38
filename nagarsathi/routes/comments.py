"""
Comment and Upvote Routes
Mounted under /api; nested under /issues/{issue_id} where they belong to an issue.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from nagarsathi.core.auth import require_auth
from nagarsathi.core.database import get_db_dependency
from nagarsathi.models.comment_model import CommentCreate
from nagarsathi.services import comment_service, upvote_service
from nagarsathi.utils.helpers import clamp_page, lenient_int, paginated, serialize_doc, serialize_docs
from nagarsathi.utils.validators import parse_object_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Comments & Upvotes"])

DEFAULT_COMMENT_LIMIT = 20
MAX_COMMENT_LIMIT = 100


@router.get("/issues/{issue_id}/comments")
async def get_comments(
    issue_id: str,
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db=Depends(get_db_dependency),
):
    page_number = clamp_page(page)
    page_size = min(max(lenient_int(limit, DEFAULT_COMMENT_LIMIT), 1), MAX_COMMENT_LIMIT)
    comments, total = await comment_service.list_comments(
        db, parse_object_id(issue_id, "issue id"), page_number, page_size
    )
    return paginated(serialize_docs(comments), total, page_number, page_size)


@router.post("/issues/{issue_id}/comments", status_code=201)
async def add_comment(
    issue_id: str,
    body: CommentCreate,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    comment = await comment_service.add_comment(
        db, parse_object_id(issue_id, "issue id"), current_user, body.content
    )
    return {"success": True, "message": "Comment added", "data": serialize_doc(comment)}


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    await comment_service.delete_comment(db, parse_object_id(comment_id, "comment id"), current_user)
    return {"success": True, "message": "Comment deleted"}


@router.post("/issues/{issue_id}/upvote")
async def toggle_upvote(
    issue_id: str,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    result = await upvote_service.toggle_upvote(db, parse_object_id(issue_id, "issue id"), current_user)
    message = "Issue upvoted" if result["upvoted"] else "Upvote removed"
    return {"success": True, "message": message, "data": result}


@router.get("/issues/{issue_id}/upvote/status")
async def get_upvote_status(
    issue_id: str,
    db=Depends(get_db_dependency),
    current_user: dict = Depends(require_auth),
):
    upvoted = await upvote_service.has_upvoted(db, parse_object_id(issue_id, "issue id"), current_user)
    return {"success": True, "data": {"upvoted": upvoted}}


@router.get("/issues/{issue_id}/upvote/count")
async def get_upvote_count(issue_id: str, db=Depends(get_db_dependency)):
    count = await upvote_service.upvote_count(db, parse_object_id(issue_id, "issue id"))
    return {"success": True, "data": {"upvotesCount": count}}
