from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from nagarsathi.services import analytics_service
from nagarsathi.services.analytics_service import (
    clamp_days,
    hotspots_pipeline,
    issues_over_time_pipeline,
    resolution_rate,
    start_of_day,
    status_breakdown_pipeline,
    window_start,
)

from tests.conftest import FakeCursor


def test_resolution_rate():
    assert resolution_rate(0, 0) == 0.0
    assert resolution_rate(1, 3) == 33.3
    assert resolution_rate(2, 3) == 66.7
    assert resolution_rate(5, 5) == 100.0


def test_clamp_days():
    assert clamp_days(0) == 1
    assert clamp_days(30) == 30
    assert clamp_days(10000) == 365


def test_window_helpers():
    now = datetime(2024, 3, 10, 15, 45, tzinfo=timezone.utc)
    assert window_start(7, now) == datetime(2024, 3, 3, 15, 45, tzinfo=timezone.utc)
    assert start_of_day(now) == datetime(2024, 3, 10, tzinfo=timezone.utc)


def test_issues_over_time_pipeline_counts_each_status():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    match, group, sort = issues_over_time_pipeline(start)
    assert match == {"$match": {"createdAt": {"$gte": start}}}
    assert group["$group"]["_id"] == {"$dateToString": {"format": "%Y-%m-%d", "date": "$createdAt"}}
    for status in ("reported", "in_progress", "resolved"):
        assert group["$group"][status] == {"$sum": {"$cond": [{"$eq": ["$status", status]}, 1, 0]}}
    assert sort == {"$sort": {"_id": 1}}


def test_hotspots_pipeline_averages_coordinates():
    pipeline = hotspots_pipeline(limit=3)
    group = pipeline[1]["$group"]
    assert group["_id"] == "$location.address"
    assert group["avgLat"] == {"$avg": {"$arrayElemAt": ["$location.coordinates", 1]}}
    assert group["avgLng"] == {"$avg": {"$arrayElemAt": ["$location.coordinates", 0]}}
    assert pipeline[-1] == {"$limit": 3}


@pytest.mark.asyncio
async def test_get_analytics_overview(db):
    db.issues.count_documents = AsyncMock(side_effect=lambda query: 4 if query == {} else 1)
    db.users.count_documents = AsyncMock(return_value=9)

    def aggregate(pipeline):
        if pipeline == status_breakdown_pipeline():
            return FakeCursor([{"_id": "reported", "count": 3}, {"_id": "resolved", "count": 1}])
        return FakeCursor([])

    db.issues.aggregate = MagicMock(side_effect=aggregate)

    data = await analytics_service.get_analytics(db, days=7, now=datetime(2024, 3, 10, tzinfo=timezone.utc))

    assert data["overview"] == {
        "totalIssues": 4,
        "totalUsers": 9,
        "resolutionRate": 25.0,
        "reportedToday": 1,
    }
    assert data["statusBreakdown"] == {"reported": 3, "resolved": 1}
    assert data["trendingIssues"] == []
    assert data["recentIssues"] == []
