import logging
from datetime import datetime, timezone
from typing import Any, Dict

from bson.objectid import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

logger = logging.getLogger(__name__)


async def _current_count(db, issue_id: ObjectId) -> int:
    issue = await db.issues.find_one({"_id": issue_id}, {"upvotesCount": 1})
    if not issue:
        raise HTTPException(status_code=404, detail="Issue not found")
    return issue.get("upvotesCount", 0)


async def toggle_upvote(db, issue_id: ObjectId, user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the user's upvote, or remove it if one exists.

    The unique (issue, user) index decides races: whoever inserts first
    wins and the counter only moves when a row was actually inserted or
    deleted.
    """
    await _current_count(db, issue_id)

    removed = await db.upvotes.delete_one({"issue": issue_id, "user": user["_id"]})
    if removed.deleted_count:
        issue = await db.issues.find_one_and_update(
            {"_id": issue_id, "upvotesCount": {"$gt": 0}},
            {"$inc": {"upvotesCount": -1}},
            projection={"upvotesCount": 1},
            return_document=ReturnDocument.AFTER,
        )
        count = issue["upvotesCount"] if issue else await _current_count(db, issue_id)
        return {"upvoted": False, "upvotesCount": count}

    try:
        await db.upvotes.insert_one(
            {"issue": issue_id, "user": user["_id"], "createdAt": datetime.now(timezone.utc)}
        )
    except DuplicateKeyError:
        logger.debug(f"Concurrent upvote on {issue_id} by {user['_id']} already recorded")
        return {"upvoted": True, "upvotesCount": await _current_count(db, issue_id)}

    issue = await db.issues.find_one_and_update(
        {"_id": issue_id},
        {"$inc": {"upvotesCount": 1}},
        projection={"upvotesCount": 1},
        return_document=ReturnDocument.AFTER,
    )
    if not issue:
        # Issue deleted between the existence check and the insert
        await db.upvotes.delete_one({"issue": issue_id, "user": user["_id"]})
        raise HTTPException(status_code=404, detail="Issue not found")
    return {"upvoted": True, "upvotesCount": issue["upvotesCount"]}


async def has_upvoted(db, issue_id: ObjectId, user: Dict[str, Any]) -> bool:
    await _current_count(db, issue_id)
    return await db.upvotes.find_one({"issue": issue_id, "user": user["_id"]}, {"_id": 1}) is not None


async def upvote_count(db, issue_id: ObjectId) -> int:
    return await _current_count(db, issue_id)
