import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from reviewpulse.config import settings
from reviewpulse.database import ensure_indexes, mongo_database
from reviewpulse.dependencies import build_pipeline
from reviewpulse.models.common import PLATFORMS
from reviewpulse.services.retry import retry_transient
from reviewpulse.store import MongoReviewStore


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--compact", action="store_true", help="Print compact JSON output (single line).")

    parser = argparse.ArgumentParser(description="Run one review pipeline stage without the API server.")
    subparsers = parser.add_subparsers(dest="stage", required=True)

    ingest = subparsers.add_parser("ingest", parents=[common], help="Fetch and store new reviews for one business.")
    ingest.add_argument("business_id")
    ingest.add_argument("platform", choices=PLATFORMS)
    ingest.add_argument("--force", action="store_true", help="Ignore the refresh interval.")

    classify = subparsers.add_parser("classify", parents=[common], help="Classify one pending review.")
    classify.add_argument("review_id")
    classify.add_argument("--retry-failed", action="store_true", help="Also re-claim a failed review.")

    notify = subparsers.add_parser(
        "notify",
        parents=[common],
        help="Evaluate owner notifications for one classified review.",
    )
    notify.add_argument("review_id")

    dispatch = subparsers.add_parser("dispatch", parents=[common], help="Deliver due notifications.")
    dispatch.add_argument("--limit", type=int, default=50)

    return parser.parse_args(argv)


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


async def _run() -> None:
    args = _parse_args()
    async with mongo_database(settings) as database:
        await ensure_indexes(database)
        pipeline = build_pipeline(MongoReviewStore(database), settings)

        if args.stage == "ingest":
            outcome = await retry_transient(
                lambda: pipeline.ingestion.ingest(args.business_id, args.platform, force=args.force),
                attempts=settings.max_fetch_attempts,
                base_delay=settings.retry_backoff_seconds,
            )
        elif args.stage == "classify":
            outcome = await pipeline.classification.classify(args.review_id, retry_failed=args.retry_failed)
        elif args.stage == "notify":
            outcome = await pipeline.notifications.evaluate_review(args.review_id)
        else:
            outcome = await pipeline.dispatcher.dispatch_due(limit=args.limit)

    result = outcome.model_dump(mode="json")
    if args.compact:
        print(json.dumps(result, ensure_ascii=False, default=_json_default))
    else:
        print(json.dumps(result, ensure_ascii=False, indent=2, default=_json_default))


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    asyncio.run(_run())
