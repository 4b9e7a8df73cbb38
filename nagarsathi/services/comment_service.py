import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from bson.objectid import ObjectId
from fastapi import HTTPException

from nagarsathi.services.issue_service import CREATOR_FIELDS

logger = logging.getLogger(__name__)


async def _ensure_issue(db, issue_id: ObjectId) -> None:
    if not await db.issues.find_one({"_id": issue_id}, {"_id": 1}):
        raise HTTPException(status_code=404, detail="Issue not found")


async def _populate_authors(db, comments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    author_ids = list({comment["author"] for comment in comments if comment.get("author")})
    authors = {}
    if author_ids:
        projection = {field: 1 for field in CREATOR_FIELDS}
        async for user in db.users.find({"_id": {"$in": author_ids}}, projection):
            authors[user["_id"]] = user
    for comment in comments:
        comment["author"] = authors.get(comment.get("author"))
    return comments


async def list_comments(db, issue_id: ObjectId, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
    await _ensure_issue(db, issue_id)
    total = await db.comments.count_documents({"issue": issue_id})
    cursor = (
        db.comments.find({"issue": issue_id})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    comments = await cursor.to_list(length=limit)
    return await _populate_authors(db, comments), total


async def add_comment(db, issue_id: ObjectId, user: Dict[str, Any], content: str) -> Dict[str, Any]:
    await _ensure_issue(db, issue_id)
    now = datetime.now(timezone.utc)
    comment = {
        "issue": issue_id,
        "author": user["_id"],
        "content": content,
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db.comments.insert_one(comment)
    comment["_id"] = result.inserted_id
    await db.issues.update_one({"_id": issue_id}, {"$inc": {"commentsCount": 1}})

    await _populate_authors(db, [comment])
    return comment


async def delete_comment(db, comment_id: ObjectId, user: Dict[str, Any]) -> None:
    comment = await db.comments.find_one({"_id": comment_id})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")

    is_author = str(comment.get("author")) == str(user["_id"])
    if not is_author and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to delete this comment")

    result = await db.comments.delete_one({"_id": comment_id})
    if result.deleted_count:
        await db.issues.update_one(
            {"_id": comment["issue"], "commentsCount": {"$gt": 0}},
            {"$inc": {"commentsCount": -1}},
        )
    logger.info(f"💬 Comment {comment_id} deleted by {user['_id']}")
