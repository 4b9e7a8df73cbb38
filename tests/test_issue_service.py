from unittest.mock import AsyncMock, MagicMock

import pytest
from bson.objectid import ObjectId
from fastapi import HTTPException

from nagarsathi.models.issue_model import IssueCreate, IssueUpdate
from nagarsathi.services import image_service, issue_service

from tests.conftest import FakeCursor


def _issue(owner, **extra):
    doc = {
        "_id": ObjectId(),
        "title": "Pothole on MG Road",
        "description": "Deep pothole near the bus stop",
        "category": "pothole",
        "status": "reported",
        "createdBy": owner["_id"],
        "images": [],
        "statusTimeline": [],
        "upvotesCount": 0,
        "commentsCount": 0,
    }
    doc.update(extra)
    return doc


def _deleted(count):
    result = MagicMock()
    result.deleted_count = count
    return result


@pytest.fixture
def recorded_deletes(db):
    order = []

    def recorder(name, count):
        async def _delete(*args, **kwargs):
            order.append(name)
            return _deleted(count)
        return _delete

    db.comments.delete_many = AsyncMock(side_effect=recorder("comments", 2))
    db.upvotes.delete_many = AsyncMock(side_effect=recorder("upvotes", 3))
    db.issues.delete_one = AsyncMock(side_effect=recorder("issue", 1))
    return order


class TestDeleteIssue:
    @pytest.mark.asyncio
    async def test_owner_delete_cascades_children_first(self, db, fs, user, recorded_deletes, monkeypatch):
        issue = _issue(user, images=["/api/images/" + str(ObjectId())])
        db.issues.find_one = AsyncMock(return_value=issue)
        delete_images = AsyncMock(return_value=1)
        monkeypatch.setattr(image_service, "delete_images", delete_images)

        await issue_service.delete_issue(db, fs, issue["_id"], user)

        assert recorded_deletes == ["comments", "upvotes", "issue"]
        db.comments.delete_many.assert_awaited_once_with({"issue": issue["_id"]})
        db.upvotes.delete_many.assert_awaited_once_with({"issue": issue["_id"]})
        delete_images.assert_awaited_once_with(fs, issue["images"])

    @pytest.mark.asyncio
    async def test_admin_can_delete_any_issue(self, db, fs, user, admin, recorded_deletes):
        db.issues.find_one = AsyncMock(return_value=_issue(user))
        await issue_service.delete_issue(db, fs, ObjectId(), admin)
        assert recorded_deletes == ["comments", "upvotes", "issue"]

    @pytest.mark.asyncio
    async def test_other_user_is_forbidden(self, db, fs, user, other_user, recorded_deletes):
        db.issues.find_one = AsyncMock(return_value=_issue(user))
        with pytest.raises(HTTPException) as exc:
            await issue_service.delete_issue(db, fs, ObjectId(), other_user)
        assert exc.value.status_code == 403
        assert recorded_deletes == []

    @pytest.mark.asyncio
    async def test_missing_issue_is_404(self, db, fs, user, recorded_deletes):
        db.issues.find_one = AsyncMock(return_value=None)
        with pytest.raises(HTTPException) as exc:
            await issue_service.delete_issue(db, fs, ObjectId(), user)
        assert exc.value.status_code == 404
        assert recorded_deletes == []


class TestUpdateIssue:
    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, db, fs, user, other_user):
        db.issues.find_one = AsyncMock(return_value=_issue(user))
        with pytest.raises(HTTPException) as exc:
            await issue_service.update_issue(db, fs, ObjectId(), other_user, IssueUpdate(title="x"), [])
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_new_images_only_fill_free_slots(self, db, fs, user, monkeypatch):
        existing = [f"/api/images/{ObjectId()}" for _ in range(4)]
        issue = _issue(user, images=existing)
        db.issues.find_one = AsyncMock(return_value=issue)
        db.issues.find_one_and_update = AsyncMock(side_effect=lambda *args, **kwargs: dict(issue))
        store_images = AsyncMock(return_value=["/api/images/new"])
        monkeypatch.setattr(image_service, "store_images", store_images)

        uploads = [MagicMock(filename=f"{i}.jpg") for i in range(3)]
        await issue_service.update_issue(
            db, fs, issue["_id"], user, IssueUpdate(title="  Bigger pothole  "), uploads
        )

        stored_uploads = store_images.await_args.args[1]
        assert stored_uploads == uploads[:1]
        update = db.issues.find_one_and_update.await_args.args[1]["$set"]
        assert update["title"] == "Bigger pothole"
        assert update["images"] == existing + ["/api/images/new"]

    @pytest.mark.asyncio
    async def test_blank_title_is_not_applied(self, db, fs, user):
        issue = _issue(user)
        db.issues.find_one = AsyncMock(return_value=issue)
        db.issues.find_one_and_update = AsyncMock(return_value=dict(issue))

        await issue_service.update_issue(db, fs, issue["_id"], user, IssueUpdate(title="   "), [])

        update = db.issues.find_one_and_update.await_args.args[1]["$set"]
        assert "title" not in update


class TestStatus:
    @pytest.mark.asyncio
    async def test_update_status_appends_timeline_entry(self, db, user, admin):
        issue = _issue(user)
        db.issues.find_one_and_update = AsyncMock(return_value=dict(issue, status="in_progress"))

        updated = await issue_service.update_status(db, issue["_id"], admin, "in_progress")

        query, update = db.issues.find_one_and_update.await_args.args
        assert query == {"_id": issue["_id"]}
        assert update["$set"]["status"] == "in_progress"
        entry = update["$push"]["statusTimeline"]
        assert entry["status"] == "in_progress"
        assert entry["updatedBy"] == admin["_id"]
        assert entry["note"] == "Status changed to in_progress"
        assert updated["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_update_status_missing_issue(self, db, admin):
        db.issues.find_one_and_update = AsyncMock(return_value=None)
        with pytest.raises(HTTPException) as exc:
            await issue_service.update_status(db, ObjectId(), admin, "resolved")
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_resolve_records_proof(self, db, fs, user, admin, monkeypatch):
        issue = _issue(user)
        db.issues.find_one = AsyncMock(return_value=issue)
        db.issues.find_one_and_update = AsyncMock(return_value=dict(issue, status="resolved"))
        monkeypatch.setattr(image_service, "store_images", AsyncMock(return_value=["/api/images/proof"]))

        await issue_service.resolve_issue(db, fs, issue["_id"], admin, None, [MagicMock(filename="p.jpg")])

        update = db.issues.find_one_and_update.await_args.args[1]
        proof = update["$set"]["resolutionProof"]
        assert update["$set"]["status"] == "resolved"
        assert proof["images"] == ["/api/images/proof"]
        assert proof["note"] == "Issue has been resolved"
        assert proof["resolvedBy"] == admin["_id"]
        assert update["$push"]["statusTimeline"]["note"] == "Issue resolved with proof"


class TestCreateAndList:
    @pytest.mark.asyncio
    async def test_create_issue_seeds_timeline(self, db, fs, user, monkeypatch):
        monkeypatch.setattr(image_service, "store_images", AsyncMock(return_value=[]))
        new_id = ObjectId()
        db.issues.insert_one = AsyncMock(return_value=MagicMock(inserted_id=new_id))
        db.users.find = MagicMock(return_value=FakeCursor([{"_id": user["_id"], "name": "Asha", "avatar": ""}]))

        data = IssueCreate(
            title="Overflowing bin",
            description="Garbage not collected for a week",
            category="garbage",
            location={"type": "Point", "coordinates": [77.2, 28.6], "address": "Connaught Place"},
            state="Delhi NCT",
        )
        issue = await issue_service.create_issue(db, fs, user, data, [])

        stored = db.issues.insert_one.await_args.args[0]
        assert stored["status"] == "reported"
        assert stored["state"] == "delhi_nct"
        assert stored["upvotesCount"] == 0 and stored["commentsCount"] == 0
        assert stored["statusTimeline"][0]["note"] == "Issue reported"
        assert issue["_id"] == new_id
        assert issue["createdBy"]["name"] == "Asha"

    @pytest.mark.asyncio
    async def test_list_issues_marks_viewer_upvotes(self, db, user):
        first, second = _issue(user), _issue(user)
        db.issues.count_documents = AsyncMock(return_value=12)
        db.issues.find = MagicMock(return_value=FakeCursor([first, second]))
        db.upvotes.find = MagicMock(return_value=FakeCursor([{"issue": first["_id"]}]))

        issues, total, page, limit = await issue_service.list_issues(
            db, {"category": "pothole", "page": "2", "limit": "5"}, viewer=user
        )

        db.issues.count_documents.assert_awaited_once_with({"category": "pothole"})
        assert (total, page, limit) == (12, 2, 5)
        assert [issue["hasUpvoted"] for issue in issues] == [True, False]

    @pytest.mark.asyncio
    async def test_my_issues_total_respects_filters(self, db, user):
        db.issues.count_documents = AsyncMock(return_value=1)
        db.issues.find = MagicMock(return_value=FakeCursor([]))

        await issue_service.list_user_issues(db, user, {"status": "resolved"})

        db.issues.count_documents.assert_awaited_once_with(
            {"$and": [{"createdBy": user["_id"]}, {"status": "resolved"}]}
        )
