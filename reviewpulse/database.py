from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel

from reviewpulse.config import Settings
from reviewpulse.models.business import PLATFORM_ID_FIELDS

BUSINESSES_COLLECTION = "businesses"
REVIEWS_COLLECTION = "reviews"
SENTIMENTS_COLLECTION = "sentiment_analysis"
NOTIFICATIONS_COLLECTION = "email_notifications"
PREFERENCES_COLLECTION = "user_preferences"
USERS_COLLECTION = "users"


@asynccontextmanager
async def mongo_database(settings: Settings) -> AsyncIterator[AsyncIOMotorDatabase]:
    client = AsyncIOMotorClient(settings.mongo_uri, tz_aware=True)
    try:
        await client.admin.command("ping")
        yield client[settings.db_name]
    finally:
        client.close()


async def ping_database(database: AsyncIOMotorDatabase | None) -> tuple[bool, str | None]:
    if database is None:
        return False, "MongoDB client is not initialized."

    try:
        await database.client.admin.command("ping")
    except Exception as exc:
        return False, str(exc)

    return True, None


async def ensure_indexes(database: AsyncIOMotorDatabase) -> None:
    business_indexes = [IndexModel([("user_id", ASCENDING)])]
    for platform, field_name in PLATFORM_ID_FIELDS.items():
        path = f"platform_ids.{field_name}"
        business_indexes.append(
            IndexModel(
                [(path, ASCENDING)],
                name=f"unique_{platform}_external_id",
                unique=True,
                partialFilterExpression={path: {"$type": "string"}},
            )
        )
    await database[BUSINESSES_COLLECTION].create_indexes(business_indexes)

    await database[REVIEWS_COLLECTION].create_indexes(
        [
            IndexModel(
                [("business_id", ASCENDING), ("platform", ASCENDING), ("platform_review_id", ASCENDING)],
                name="unique_review_dedup_key",
                unique=True,
            ),
            IndexModel([("processing_status", ASCENDING), ("updated_at", ASCENDING)]),
            IndexModel([("processing_status", ASCENDING), ("notifications_evaluated_at", ASCENDING)]),
            IndexModel([("business_id", ASCENDING), ("review_date", DESCENDING)]),
        ]
    )
    await database[SENTIMENTS_COLLECTION].create_indexes(
        [
            IndexModel([("review_id", ASCENDING)], name="unique_review_sentiment", unique=True),
            IndexModel([("business_id", ASCENDING), ("result.label", ASCENDING)]),
        ]
    )
    await database[NOTIFICATIONS_COLLECTION].create_indexes(
        [
            IndexModel(
                [("user_id", ASCENDING), ("review_id", ASCENDING), ("notification_type", ASCENDING)],
                name="unique_review_notification",
                unique=True,
                partialFilterExpression={"review_id": {"$type": "string"}},
            ),
            IndexModel([("status", ASCENDING), ("deliver_after", ASCENDING)]),
        ]
    )
    await database[PREFERENCES_COLLECTION].create_indexes(
        [IndexModel([("user_id", ASCENDING)], name="unique_user_preferences", unique=True)]
    )
