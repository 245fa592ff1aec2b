from fastapi import APIRouter, Depends, HTTPException, Query, status

from reviewpulse.dependencies import Pipeline, get_pipeline

router = APIRouter(prefix="/notifications")


@router.post("/dispatch", tags=["Notifications"])
async def dispatch_due_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    pipeline: Pipeline = Depends(get_pipeline),
) -> dict:
    try:
        report = await pipeline.dispatcher.dispatch_due(limit=limit)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return report.model_dump(mode="json")
