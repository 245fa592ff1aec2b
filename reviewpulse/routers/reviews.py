from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict

from reviewpulse.dependencies import Pipeline, get_pipeline

router = APIRouter(prefix="/reviews")


class ClassifyRequest(BaseModel):
    retry_failed: bool = False

    model_config = ConfigDict(extra="forbid")


@router.get("/{review_id}", tags=["Reviews"])
async def get_review(review_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    review = await pipeline.store.get_review(review_id)
    if review is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Review '{review_id}' not found.")

    sentiment = await pipeline.store.get_sentiment(review_id)
    payload = review.model_dump(mode="json")
    payload["sentiment"] = sentiment.model_dump(mode="json", exclude={"id"}) if sentiment else None
    return payload


@router.post("/{review_id}/classify", tags=["Classification"])
async def classify_review(
    review_id: str,
    payload: ClassifyRequest | None = None,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    body = payload or ClassifyRequest()
    try:
        outcome = await pipeline.classification.classify(review_id, retry_failed=body.retry_failed)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return outcome.model_dump(mode="json")


@router.post("/{review_id}/notifications", tags=["Notifications"])
async def evaluate_review_notifications(review_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    try:
        outcome = await pipeline.notifications.evaluate_review(review_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return outcome.model_dump(mode="json")
