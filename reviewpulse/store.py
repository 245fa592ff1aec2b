from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from reviewpulse.database import (
    BUSINESSES_COLLECTION,
    NOTIFICATIONS_COLLECTION,
    PREFERENCES_COLLECTION,
    REVIEWS_COLLECTION,
    SENTIMENTS_COLLECTION,
    USERS_COLLECTION,
)
from reviewpulse.errors import PersistenceError
from reviewpulse.models import Business, NotificationRecord, Review, SentimentRecord, User, UserPreference
from reviewpulse.models.common import utc_now


class ReviewStore(Protocol):
    """Persistence operations the pipeline stages rely on.

    Inserts report a uniqueness violation by returning ``None``; status changes
    are conditional on the current status so that separate worker processes can
    use the status field as a claim. Driver failures surface as ``PersistenceError``.
    """

    async def get_business(self, business_id: str) -> Business | None: ...

    async def list_active_businesses(self) -> list[Business]: ...

    async def record_fetch(self, business_id: str, platform: str, fetched_at: datetime) -> None: ...

    async def find_review(self, business_id: str, platform: str, platform_review_id: str) -> Review | None: ...

    async def insert_review(self, review: Review) -> str | None: ...

    async def get_review(self, review_id: str) -> Review | None: ...

    async def list_review_ids(
        self,
        status: str,
        *,
        limit: int,
        updated_before: datetime | None = None,
    ) -> list[str]: ...

    async def claim_review(
        self,
        review_id: str,
        from_statuses: Iterable[str],
        *,
        stale_before: datetime | None = None,
    ) -> Review | None: ...

    async def transition_review(
        self,
        review_id: str,
        *,
        expected: str,
        status: str,
        error_message: str | None = None,
    ) -> bool: ...

    async def list_unnotified_review_ids(self, *, limit: int) -> list[str]: ...

    async def mark_notifications_evaluated(self, review_id: str, evaluated_at: datetime) -> None: ...

    async def save_sentiment(self, record: SentimentRecord) -> None: ...

    async def get_sentiment(self, review_id: str) -> SentimentRecord | None: ...

    async def get_user(self, user_id: str) -> User | None: ...

    async def get_preferences(self, user_id: str) -> UserPreference: ...

    async def insert_notification(self, record: NotificationRecord) -> str | None: ...

    async def claim_due_notification(self, now: datetime, *, lease: timedelta) -> NotificationRecord | None: ...

    async def mark_notification_sent(self, notification_id: str, *, sent_at: datetime, attempts: int) -> None: ...

    async def release_notification(
        self,
        notification_id: str,
        *,
        deliver_after: datetime,
        error_message: str | None = None,
        attempts: int | None = None,
    ) -> None: ...

    async def mark_notification_failed(self, notification_id: str, *, error_message: str, attempts: int) -> None: ...

    async def business_summary(self, business_id: str) -> dict[str, Any]: ...


class MongoReviewStore:
    def __init__(self, database: AsyncIOMotorDatabase) -> None:
        self._database = database
        self._businesses = database[BUSINESSES_COLLECTION]
        self._reviews = database[REVIEWS_COLLECTION]
        self._sentiments = database[SENTIMENTS_COLLECTION]
        self._notifications = database[NOTIFICATIONS_COLLECTION]
        self._preferences = database[PREFERENCES_COLLECTION]
        self._users = database[USERS_COLLECTION]

    async def get_business(self, business_id: str) -> Business | None:
        parsed_id = self._parse_object_id(business_id)
        if parsed_id is None:
            return None
        doc = await self._find_one(self._businesses, {"_id": parsed_id}, f"business '{business_id}'")
        return Business.model_validate(self._from_doc(doc)) if doc else None

    async def list_active_businesses(self) -> list[Business]:
        try:
            docs = await self._businesses.find({"is_active": True}).sort([("_id", 1)]).to_list(length=None)
        except PyMongoError as exc:
            raise PersistenceError(f"Could not list active businesses: {exc}") from exc
        return [Business.model_validate(self._from_doc(doc)) for doc in docs]

    async def record_fetch(self, business_id: str, platform: str, fetched_at: datetime) -> None:
        parsed_id = self._parse_object_id(business_id)
        try:
            await self._businesses.update_one(
                {"_id": parsed_id},
                {"$set": {f"last_fetch_at.{platform}": fetched_at, "updated_at": fetched_at}},
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not record fetch for business '{business_id}': {exc}") from exc

    async def find_review(self, business_id: str, platform: str, platform_review_id: str) -> Review | None:
        doc = await self._find_one(
            self._reviews,
            {
                "business_id": business_id,
                "platform": platform,
                "platform_review_id": platform_review_id,
            },
            f"{platform} review '{platform_review_id}'",
        )
        return Review.model_validate(self._from_doc(doc)) if doc else None

    async def insert_review(self, review: Review) -> str | None:
        payload = review.model_dump(mode="python", exclude={"id"})
        try:
            inserted = await self._reviews.insert_one(payload)
        except DuplicateKeyError:
            return None
        except PyMongoError as exc:
            raise PersistenceError(f"Could not insert review '{review.platform_review_id}': {exc}") from exc
        return str(inserted.inserted_id)

    async def get_review(self, review_id: str) -> Review | None:
        parsed_id = self._parse_object_id(review_id)
        if parsed_id is None:
            return None
        doc = await self._find_one(self._reviews, {"_id": parsed_id}, f"review '{review_id}'")
        return Review.model_validate(self._from_doc(doc)) if doc else None

    async def list_review_ids(
        self,
        status: str,
        *,
        limit: int,
        updated_before: datetime | None = None,
    ) -> list[str]:
        query: dict[str, Any] = {"processing_status": status}
        if updated_before is not None:
            query["updated_at"] = {"$lte": updated_before}
        return await self._list_ids(self._reviews, query, limit=limit, label=f"{status} reviews")

    async def claim_review(
        self,
        review_id: str,
        from_statuses: Iterable[str],
        *,
        stale_before: datetime | None = None,
    ) -> Review | None:
        parsed_id = self._parse_object_id(review_id)
        if parsed_id is None:
            return None
        query: dict[str, Any] = {"_id": parsed_id, "processing_status": {"$in": list(from_statuses)}}
        if stale_before is not None:
            # A claim whose worker died mid-classification expires after the lease.
            status_filter = query.pop("processing_status")
            query["$or"] = [
                {"processing_status": status_filter},
                {"processing_status": "processing", "updated_at": {"$lte": stale_before}},
            ]
        now = utc_now()
        try:
            doc = await self._reviews.find_one_and_update(
                query,
                {
                    "$set": {"processing_status": "processing", "error_message": None, "updated_at": now},
                    "$inc": {"attempts": 1},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not claim review '{review_id}': {exc}") from exc
        return Review.model_validate(self._from_doc(doc)) if doc else None

    async def transition_review(
        self,
        review_id: str,
        *,
        expected: str,
        status: str,
        error_message: str | None = None,
    ) -> bool:
        parsed_id = self._parse_object_id(review_id)
        if parsed_id is None:
            return False
        try:
            result = await self._reviews.update_one(
                {"_id": parsed_id, "processing_status": expected},
                {
                    "$set": {
                        "processing_status": status,
                        "error_message": error_message,
                        "updated_at": utc_now(),
                    }
                },
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not move review '{review_id}' to {status}: {exc}") from exc
        return result.modified_count == 1

    async def list_unnotified_review_ids(self, *, limit: int) -> list[str]:
        return await self._list_ids(
            self._reviews,
            {"processing_status": "completed", "notifications_evaluated_at": None},
            limit=limit,
            label="reviews awaiting notifications",
        )

    async def mark_notifications_evaluated(self, review_id: str, evaluated_at: datetime) -> None:
        parsed_id = self._parse_object_id(review_id)
        try:
            await self._reviews.update_one(
                {"_id": parsed_id},
                {"$set": {"notifications_evaluated_at": evaluated_at}},
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not mark notifications for review '{review_id}': {exc}") from exc

    async def save_sentiment(self, record: SentimentRecord) -> None:
        payload = record.model_dump(mode="python", exclude={"id"})
        try:
            await self._sentiments.replace_one({"review_id": record.review_id}, payload, upsert=True)
        except PyMongoError as exc:
            raise PersistenceError(f"Could not save sentiment for review '{record.review_id}': {exc}") from exc

    async def get_sentiment(self, review_id: str) -> SentimentRecord | None:
        doc = await self._find_one(self._sentiments, {"review_id": review_id}, f"sentiment of review '{review_id}'")
        return SentimentRecord.model_validate(self._from_doc(doc)) if doc else None

    async def get_user(self, user_id: str) -> User | None:
        parsed_id = self._parse_object_id(user_id)
        if parsed_id is None:
            return None
        doc = await self._find_one(self._users, {"_id": parsed_id}, f"user '{user_id}'")
        return User.model_validate(self._from_doc(doc)) if doc else None

    async def get_preferences(self, user_id: str) -> UserPreference:
        doc = await self._find_one(self._preferences, {"user_id": user_id}, f"preferences of user '{user_id}'")
        if doc is None:
            return UserPreference(user_id=user_id)
        doc.pop("_id", None)
        return UserPreference.model_validate(doc)

    async def insert_notification(self, record: NotificationRecord) -> str | None:
        payload = record.model_dump(mode="python", exclude={"id"})
        payload["locked_until"] = None
        try:
            inserted = await self._notifications.insert_one(payload)
        except DuplicateKeyError:
            return None
        except PyMongoError as exc:
            raise PersistenceError(f"Could not insert {record.notification_type} notification: {exc}") from exc
        return str(inserted.inserted_id)

    async def claim_due_notification(self, now: datetime, *, lease: timedelta) -> NotificationRecord | None:
        try:
            doc = await self._notifications.find_one_and_update(
                {
                    "status": "pending",
                    "deliver_after": {"$lte": now},
                    "$or": [{"locked_until": None}, {"locked_until": {"$lte": now}}],
                },
                {"$set": {"locked_until": now + lease}},
                sort=[("deliver_after", 1), ("_id", 1)],
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not claim due notification: {exc}") from exc
        if doc is None:
            return None
        doc.pop("locked_until", None)
        return NotificationRecord.model_validate(self._from_doc(doc))

    async def mark_notification_sent(self, notification_id: str, *, sent_at: datetime, attempts: int) -> None:
        await self._update_notification(
            notification_id,
            {
                "status": "sent",
                "sent_at": sent_at,
                "attempts": attempts,
                "error_message": None,
                "locked_until": None,
            },
        )

    async def release_notification(
        self,
        notification_id: str,
        *,
        deliver_after: datetime,
        error_message: str | None = None,
        attempts: int | None = None,
    ) -> None:
        fields: dict[str, Any] = {
            "status": "pending",
            "deliver_after": deliver_after,
            "error_message": error_message,
            "locked_until": None,
        }
        if attempts is not None:
            fields["attempts"] = attempts
        await self._update_notification(notification_id, fields)

    async def mark_notification_failed(self, notification_id: str, *, error_message: str, attempts: int) -> None:
        await self._update_notification(
            notification_id,
            {"status": "failed", "error_message": error_message, "attempts": attempts, "locked_until": None},
        )

    async def business_summary(self, business_id: str) -> dict[str, Any]:
        try:
            rows = await self._reviews.aggregate(
                [
                    {"$match": {"business_id": business_id}},
                    {
                        "$group": {
                            "_id": None,
                            "total_reviews": {"$sum": 1},
                            "average_rating": {"$avg": "$rating"},
                            "low_rating_count": {"$sum": {"$cond": [{"$lte": ["$rating", 3]}, 1, 0]}},
                            "failed_count": {
                                "$sum": {"$cond": [{"$eq": ["$processing_status", "failed"]}, 1, 0]}
                            },
                            "latest_review_date": {"$max": "$review_date"},
                        }
                    },
                ]
            ).to_list(length=1)
            negative_count = await self._sentiments.count_documents(
                {"business_id": business_id, "result.label": "negative"}
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not summarize business '{business_id}': {exc}") from exc

        row = rows[0] if rows else {}
        average_rating = row.get("average_rating")
        return {
            "business_id": business_id,
            "total_reviews": int(row.get("total_reviews", 0)),
            "average_rating": round(float(average_rating), 2) if average_rating is not None else None,
            "low_rating_count": int(row.get("low_rating_count", 0)),
            "negative_sentiment_count": int(negative_count),
            "failed_count": int(row.get("failed_count", 0)),
            "latest_review_date": row.get("latest_review_date"),
        }

    async def _find_one(
        self,
        collection: AsyncIOMotorCollection,
        query: dict[str, Any],
        label: str,
    ) -> dict[str, Any] | None:
        try:
            return await collection.find_one(query)
        except PyMongoError as exc:
            raise PersistenceError(f"Could not load {label}: {exc}") from exc

    async def _list_ids(
        self,
        collection: AsyncIOMotorCollection,
        query: dict[str, Any],
        *,
        limit: int,
        label: str,
    ) -> list[str]:
        try:
            docs = (
                await collection.find(query, {"_id": 1})
                .sort([("updated_at", 1), ("_id", 1)])
                .limit(max(1, int(limit)))
                .to_list(length=None)
            )
        except PyMongoError as exc:
            raise PersistenceError(f"Could not list {label}: {exc}") from exc
        return [str(doc["_id"]) for doc in docs]

    async def _update_notification(self, notification_id: str, fields: dict[str, Any]) -> None:
        parsed_id = self._parse_object_id(notification_id)
        try:
            await self._notifications.update_one({"_id": parsed_id}, {"$set": fields})
        except PyMongoError as exc:
            raise PersistenceError(f"Could not update notification '{notification_id}': {exc}") from exc

    def _parse_object_id(self, value: str) -> ObjectId | None:
        try:
            return ObjectId(str(value))
        except (InvalidId, TypeError):
            return None

    def _from_doc(self, doc: dict[str, Any]) -> dict[str, Any]:
        payload = dict(doc)
        payload["id"] = str(payload.pop("_id"))
        return payload
