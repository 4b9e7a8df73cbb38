import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson.objectid import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from nagarsathi.services.clerk_service import ClerkClient

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = {"name": 1, "avatar": 1, "createdAt": 1}


async def get_or_create_user(db, clerk: ClerkClient, clerk_user_id: str) -> Dict[str, Any]:
    """
    Look up the local user for a Clerk subject, provisioning it on first sight.

    The Clerk backend API is only called when no local record exists.
    """
    user = await db.users.find_one({"clerkUserId": clerk_user_id})
    if user:
        return user

    clerk_user = await clerk.get_user(clerk_user_id)
    now = datetime.now(timezone.utc)
    user_doc = {
        **ClerkClient.profile_from_user(clerk_user),
        "phone": "",
        "bio": "",
        "role": "user",
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = await db.users.insert_one(user_doc)
        user_doc["_id"] = result.inserted_id
        logger.info(f"👤 Provisioned user {user_doc['email'] or clerk_user_id}")
        return user_doc
    except DuplicateKeyError:
        # A concurrent request provisioned the same subject first
        return await db.users.find_one({"clerkUserId": clerk_user_id})


async def update_profile(db, user_id: ObjectId, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    updates = {key: value for key, value in fields.items() if value is not None}
    updates["updatedAt"] = datetime.now(timezone.utc)
    return await db.users.find_one_and_update(
        {"_id": user_id},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )


async def get_public_profile(db, user_id: ObjectId) -> Optional[Dict[str, Any]]:
    user = await db.users.find_one({"_id": user_id}, PUBLIC_FIELDS)
    if not user:
        return None
    user["issueCount"] = await db.issues.count_documents({"createdBy": user_id})
    return user


async def list_users(db, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
    """Users newest first, each with the number of issues they reported."""
    total = await db.users.count_documents({})
    cursor = db.users.find().sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    users = await cursor.to_list(length=limit)

    counts = {}
    if users:
        pipeline = [
            {"$match": {"createdBy": {"$in": [user["_id"] for user in users]}}},
            {"$group": {"_id": "$createdBy", "count": {"$sum": 1}}},
        ]
        async for row in db.issues.aggregate(pipeline):
            counts[row["_id"]] = row["count"]

    for user in users:
        user["issueCount"] = counts.get(user["_id"], 0)
    return users, total


async def update_role(db, user_id: ObjectId, role: str) -> Optional[Dict[str, Any]]:
    return await db.users.find_one_and_update(
        {"_id": user_id},
        {"$set": {"role": role, "updatedAt": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
