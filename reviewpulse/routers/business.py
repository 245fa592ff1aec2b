from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict

from reviewpulse.dependencies import Pipeline, get_pipeline

router = APIRouter(prefix="/businesses")


class IngestRequest(BaseModel):
    platform: str
    force: bool = False

    model_config = ConfigDict(extra="forbid")


@router.post("/{business_id}/ingest", tags=["Ingestion"])
async def ingest_business_reviews(
    business_id: str,
    payload: IngestRequest,
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    try:
        result = await pipeline.ingestion.ingest(business_id, payload.platform, force=payload.force)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return result.model_dump(mode="json")


@router.get("/{business_id}/summary", tags=["Business"])
async def get_business_summary(business_id: str, pipeline: Pipeline = Depends(get_pipeline)) -> dict:
    business = await pipeline.store.get_business(business_id)
    if business is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Business '{business_id}' not found.")

    summary = await pipeline.store.business_summary(business_id)
    summary["name"] = business.name
    summary["is_active"] = business.is_active
    return summary
