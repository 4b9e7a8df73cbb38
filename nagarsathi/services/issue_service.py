"""
Issue persistence and business rules.

Route handlers stay thin: they parse the request, call into this module
and wrap the result in the response envelope.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from bson.objectid import ObjectId
from fastapi import HTTPException, UploadFile
from pymongo import ReturnDocument

from nagarsathi.models.issue_model import MAX_ISSUE_IMAGES, MAX_RESOLUTION_IMAGES, IssueCreate, IssueUpdate
from nagarsathi.services import image_service
from nagarsathi.utils.query_builder import IssueQuery
from nagarsathi.utils.validators import normalize_region

logger = logging.getLogger(__name__)

CREATOR_FIELDS = ("name", "avatar")
ADMIN_CREATOR_FIELDS = ("name", "email", "avatar")
MAP_PROJECTION = {
    "title": 1,
    "category": 1,
    "status": 1,
    "location": 1,
    "upvotesCount": 1,
    "createdAt": 1,
}
MAP_LIMIT = 500


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _same_id(left, right) -> bool:
    return left is not None and right is not None and str(left) == str(right)


def is_owner(issue: Dict[str, Any], user: Dict[str, Any]) -> bool:
    return _same_id(issue.get("createdBy"), user.get("_id"))


# ---------------------------------------------------------------------------
# Population of user references
# ---------------------------------------------------------------------------

async def _load_users(db, ids: Iterable[ObjectId], fields: Tuple[str, ...]) -> Dict[ObjectId, Dict[str, Any]]:
    unique_ids = list({user_id for user_id in ids if isinstance(user_id, ObjectId)})
    if not unique_ids:
        return {}
    projection = {field: 1 for field in fields}
    cursor = db.users.find({"_id": {"$in": unique_ids}}, projection)
    return {user["_id"]: user async for user in cursor}


async def populate_issues(
    db,
    issues: List[Dict[str, Any]],
    creator_fields: Tuple[str, ...] = CREATOR_FIELDS,
    timeline: bool = False,
    resolver: bool = False,
) -> List[Dict[str, Any]]:
    """Replace user ObjectIds with user sub-documents; unknown users become None."""
    creator_ids = [issue.get("createdBy") for issue in issues]
    actor_ids = []
    for issue in issues:
        if timeline:
            actor_ids.extend(entry.get("updatedBy") for entry in issue.get("statusTimeline") or [])
        if resolver and issue.get("resolutionProof"):
            actor_ids.append(issue["resolutionProof"].get("resolvedBy"))

    creators, actors = await asyncio.gather(
        _load_users(db, creator_ids, creator_fields),
        _load_users(db, actor_ids, ("name",)),
    )

    for issue in issues:
        if "createdBy" in issue:
            issue["createdBy"] = creators.get(issue["createdBy"])
        if timeline:
            for entry in issue.get("statusTimeline") or []:
                entry["updatedBy"] = actors.get(entry.get("updatedBy"))
        if resolver and issue.get("resolutionProof"):
            proof = issue["resolutionProof"]
            proof["resolvedBy"] = actors.get(proof.get("resolvedBy"))
    return issues


async def mark_upvoted(db, issues: List[Dict[str, Any]], viewer: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Add ``hasUpvoted`` to each issue for an authenticated viewer."""
    if not viewer or not issues:
        return issues
    ids = [issue["_id"] for issue in issues]
    cursor = db.upvotes.find({"user": viewer["_id"], "issue": {"$in": ids}}, {"issue": 1})
    upvoted = {row["issue"] async for row in cursor}
    for issue in issues:
        issue["hasUpvoted"] = issue["_id"] in upvoted
    return issues


async def _get_or_404(db, issue_id: ObjectId) -> Dict[str, Any]:
    issue = await db.issues.find_one({"_id": issue_id})
    if not issue:
        raise HTTPException(status_code=404, detail="Issue not found")
    return issue


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def list_issues(db, params: Mapping[str, Any], viewer: Optional[Dict[str, Any]] = None):
    query = IssueQuery(params).filter().search().near_location().sort().limit_fields().paginate()
    total = await db.issues.count_documents(query.filter_query)
    issues = await query.build(db.issues).to_list(length=query.limit)
    await populate_issues(db, issues)
    await mark_upvoted(db, issues, viewer)
    return issues, total, query.page, query.limit


async def list_admin_issues(db, params: Mapping[str, Any]):
    query = IssueQuery(params).filter().search().sort().paginate()
    total = await db.issues.count_documents(query.filter_query)
    issues = await query.build(db.issues).to_list(length=query.limit)
    await populate_issues(db, issues, creator_fields=ADMIN_CREATOR_FIELDS, timeline=True)
    return issues, total, query.page, query.limit


async def list_user_issues(db, user: Dict[str, Any], params: Mapping[str, Any]):
    query = IssueQuery(params, base_filter={"createdBy": user["_id"]}).filter().sort().paginate()
    total = await db.issues.count_documents(query.filter_query)
    issues = await query.build(db.issues).to_list(length=query.limit)
    return issues, total, query.page, query.limit


async def list_map_issues(db, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
    query = IssueQuery(params).filter().near_location()
    query.projection = MAP_PROJECTION
    query.limit = MAP_LIMIT
    return await query.build(db.issues).to_list(length=MAP_LIMIT)


async def _count_by(db, field: str, skip_blank: bool = True) -> Dict[str, int]:
    pipeline = []
    if skip_blank:
        pipeline.append({"$match": {field: {"$exists": True, "$ne": ""}}})
    pipeline.append({"$group": {"_id": f"${field}", "count": {"$sum": 1}}})
    pipeline.append({"$sort": {"count": -1} if skip_blank else {"_id": 1}})
    return {row["_id"]: row["count"] async for row in db.issues.aggregate(pipeline) if row["_id"] is not None}


async def filter_counts(db) -> Dict[str, Dict[str, int]]:
    states, districts, categories, statuses = await asyncio.gather(
        _count_by(db, "state"),
        _count_by(db, "district"),
        _count_by(db, "category"),
        _count_by(db, "status", skip_blank=False),
    )
    return {"states": states, "districts": districts, "categories": categories, "statuses": statuses}


async def get_issue(db, issue_id: ObjectId, viewer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    issue = await _get_or_404(db, issue_id)
    await populate_issues(db, [issue], timeline=True, resolver=True)
    await mark_upvoted(db, [issue], viewer)
    return issue


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_issue(db, fs, user: Dict[str, Any], data: IssueCreate, uploads: List[UploadFile]) -> Dict[str, Any]:
    images = await image_service.store_images(
        fs, uploads[:MAX_ISSUE_IMAGES], image_service.ISSUE_FOLDER, user["_id"]
    )
    now = _now()
    issue_doc = {
        "title": data.title,
        "description": data.description,
        "category": data.category,
        "status": "reported",
        "location": data.location.model_dump(),
        "state": normalize_region(data.state),
        "district": normalize_region(data.district),
        "images": images,
        "upvotesCount": 0,
        "commentsCount": 0,
        "createdBy": user["_id"],
        "statusTimeline": [
            {"status": "reported", "updatedAt": now, "updatedBy": user["_id"], "note": "Issue reported"},
        ],
        "resolutionProof": None,
        "createdAt": now,
        "updatedAt": now,
    }
    result = await db.issues.insert_one(issue_doc)
    issue_doc["_id"] = result.inserted_id
    logger.info(f"📝 Issue {result.inserted_id} reported by {user['_id']}")

    await populate_issues(db, [issue_doc])
    return issue_doc


async def update_issue(
    db, fs, issue_id: ObjectId, user: Dict[str, Any], changes: IssueUpdate, uploads: List[UploadFile]
) -> Dict[str, Any]:
    issue = await _get_or_404(db, issue_id)
    if not is_owner(issue, user):
        raise HTTPException(status_code=403, detail="You can only update your own issues")

    update_fields: Dict[str, Any] = {}
    if changes.title and changes.title.strip():
        update_fields["title"] = changes.title.strip()
    if changes.description and changes.description.strip():
        update_fields["description"] = changes.description.strip()
    if changes.category:
        update_fields["category"] = changes.category

    existing_images = issue.get("images") or []
    free_slots = max(MAX_ISSUE_IMAGES - len(existing_images), 0)
    if uploads:
        if len(uploads) > free_slots:
            logger.info(f"Issue {issue_id}: dropping {len(uploads) - free_slots} image(s) over the limit")
        new_images = await image_service.store_images(
            fs, uploads[:free_slots], image_service.ISSUE_FOLDER, user["_id"]
        )
        update_fields["images"] = (existing_images + new_images)[:MAX_ISSUE_IMAGES]

    update_fields["updatedAt"] = _now()
    updated = await db.issues.find_one_and_update(
        {"_id": issue_id},
        {"$set": update_fields},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Issue not found")

    await populate_issues(db, [updated])
    return updated


async def delete_issue(db, fs, issue_id: ObjectId, user: Dict[str, Any]) -> None:
    """
    Delete an issue together with its comments and upvotes.

    Children go first so a failure part-way never leaves comments or
    upvotes pointing at a missing issue. The three deletes are not
    transactional.
    """
    issue = await _get_or_404(db, issue_id)
    if not is_owner(issue, user) and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Not authorized to delete this issue")

    comments = await db.comments.delete_many({"issue": issue_id})
    upvotes = await db.upvotes.delete_many({"issue": issue_id})
    await db.issues.delete_one({"_id": issue_id})
    logger.info(
        f"🗑️ Issue {issue_id} deleted by {user['_id']} "
        f"({comments.deleted_count} comments, {upvotes.deleted_count} upvotes)"
    )

    images = list(issue.get("images") or [])
    if issue.get("resolutionProof"):
        images.extend(issue["resolutionProof"].get("images") or [])
    if images:
        try:
            await image_service.delete_images(fs, images)
        except Exception as e:
            logger.error(f"⚠️ Failed to delete images of issue {issue_id}: {e}")


async def update_status(
    db, issue_id: ObjectId, admin: Dict[str, Any], status: str, note: Optional[str] = None
) -> Dict[str, Any]:
    """Set any status value and append it to the timeline; transitions are unguarded."""
    now = _now()
    entry = {
        "status": status,
        "updatedAt": now,
        "updatedBy": admin["_id"],
        "note": note or f"Status changed to {status}",
    }
    updated = await db.issues.find_one_and_update(
        {"_id": issue_id},
        {"$set": {"status": status, "updatedAt": now}, "$push": {"statusTimeline": entry}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Issue not found")

    logger.info(f"🔄 Issue {issue_id} status -> {status} by {admin['_id']}")
    await populate_issues(db, [updated], timeline=True)
    return updated


async def resolve_issue(
    db, fs, issue_id: ObjectId, admin: Dict[str, Any], note: Optional[str], uploads: List[UploadFile]
) -> Dict[str, Any]:
    await _get_or_404(db, issue_id)

    images = await image_service.store_images(
        fs, uploads[:MAX_RESOLUTION_IMAGES], image_service.RESOLUTION_FOLDER, admin["_id"]
    )
    now = _now()
    proof = {
        "images": images,
        "note": note or "Issue has been resolved",
        "resolvedAt": now,
        "resolvedBy": admin["_id"],
    }
    entry = {
        "status": "resolved",
        "updatedAt": now,
        "updatedBy": admin["_id"],
        "note": note or "Issue resolved with proof",
    }
    updated = await db.issues.find_one_and_update(
        {"_id": issue_id},
        {
            "$set": {"status": "resolved", "resolutionProof": proof, "updatedAt": now},
            "$push": {"statusTimeline": entry},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        # Deleted while the proof was uploading
        await image_service.delete_images(fs, images)
        raise HTTPException(status_code=404, detail="Issue not found")

    logger.info(f"✅ Issue {issue_id} resolved by {admin['_id']}")
    await populate_issues(db, [updated], resolver=True)
    return updated
