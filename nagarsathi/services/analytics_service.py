"""
Admin dashboard analytics.

Every figure is recomputed from the issues/users collections on each
request; there is no cache in front of these aggregations.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from nagarsathi.utils.validators import ISSUE_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
MAX_WINDOW_DAYS = 365
TRENDING_LIMIT = 10
HOTSPOT_LIMIT = 10
RECENT_LIMIT = 5

TRENDING_PROJECTION = {
    "title": 1,
    "category": 1,
    "status": 1,
    "upvotesCount": 1,
    "commentsCount": 1,
    "createdAt": 1,
}
RECENT_PROJECTION = {"title": 1, "category": 1, "status": 1, "createdAt": 1}


def status_breakdown_pipeline() -> List[Dict[str, Any]]:
    return [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]


def category_breakdown_pipeline() -> List[Dict[str, Any]]:
    return [
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
        {"$sort": {"count": -1}},
    ]


def issues_over_time_pipeline(start_date: datetime) -> List[Dict[str, Any]]:
    """Per-day totals in the window, with a sub-count for each status."""
    group: Dict[str, Any] = {
        "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$createdAt"}},
        "total": {"$sum": 1},
    }
    for status in ISSUE_STATUSES:
        group[status] = {"$sum": {"$cond": [{"$eq": ["$status", status]}, 1, 0]}}
    return [
        {"$match": {"createdAt": {"$gte": start_date}}},
        {"$group": group},
        {"$sort": {"_id": 1}},
    ]


def hotspots_pipeline(limit: int = HOTSPOT_LIMIT) -> List[Dict[str, Any]]:
    """Addresses ranked by issue count, with the mean coordinate of their issues."""
    return [
        {"$match": {"location.address": {"$exists": True, "$ne": ""}}},
        {
            "$group": {
                "_id": "$location.address",
                "count": {"$sum": 1},
                "avgLat": {"$avg": {"$arrayElemAt": ["$location.coordinates", 1]}},
                "avgLng": {"$avg": {"$arrayElemAt": ["$location.coordinates", 0]}},
            }
        },
        {"$sort": {"count": -1}},
        {"$limit": limit},
    ]


def resolution_rate(resolved: int, total: int) -> float:
    """Percentage of resolved issues, one decimal place."""
    if total <= 0:
        return 0.0
    return round(resolved / total * 100, 1)


def window_start(days: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def clamp_days(days: int) -> int:
    return max(1, min(days, MAX_WINDOW_DAYS))


async def _aggregate(collection, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return await collection.aggregate(pipeline).to_list(length=None)


async def get_analytics(db, days: int = DEFAULT_WINDOW_DAYS, now: Optional[datetime] = None) -> Dict[str, Any]:
    days = clamp_days(days)
    now = now or datetime.now(timezone.utc)
    start_date = window_start(days, now)

    (
        total_issues,
        total_users,
        reported_today,
        status_counts,
        category_counts,
        issues_over_time,
        trending,
        hotspots,
        recent,
    ) = await asyncio.gather(
        db.issues.count_documents({}),
        db.users.count_documents({}),
        db.issues.count_documents({"createdAt": {"$gte": start_of_day(now)}}),
        _aggregate(db.issues, status_breakdown_pipeline()),
        _aggregate(db.issues, category_breakdown_pipeline()),
        _aggregate(db.issues, issues_over_time_pipeline(start_date)),
        db.issues.find({"createdAt": {"$gte": start_date}}, TRENDING_PROJECTION)
        .sort("upvotesCount", -1)
        .limit(TRENDING_LIMIT)
        .to_list(length=TRENDING_LIMIT),
        _aggregate(db.issues, hotspots_pipeline()),
        db.issues.find({}, RECENT_PROJECTION)
        .sort("createdAt", -1)
        .limit(RECENT_LIMIT)
        .to_list(length=RECENT_LIMIT),
    )

    status_breakdown = {row["_id"]: row["count"] for row in status_counts}
    logger.info(f"📊 Analytics computed over {days} days ({total_issues} issues)")

    return {
        "overview": {
            "totalIssues": total_issues,
            "totalUsers": total_users,
            "resolutionRate": resolution_rate(status_breakdown.get("resolved", 0), total_issues),
            "reportedToday": reported_today,
        },
        "statusBreakdown": status_breakdown,
        "categoryBreakdown": category_counts,
        "issuesOverTime": issues_over_time,
        "trendingIssues": trending,
        "hotspots": hotspots,
        "recentIssues": recent,
    }
