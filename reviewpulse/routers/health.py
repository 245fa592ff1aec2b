from datetime import datetime

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from reviewpulse.config import settings
from reviewpulse.database import ping_database
from reviewpulse.models.common import utc_now

router = APIRouter(prefix="/health", tags=["health"])


class ComponentCheck(BaseModel):
    name: str
    ok: bool
    detail: str | None = None


class ReadinessReport(BaseModel):
    """Whether the API can serve pipeline requests, one check per dependency."""

    ready: bool
    checks: list[ComponentCheck]
    review_source: str
    notifier: str
    checked_at: datetime = Field(default_factory=utc_now)


@router.get("/live")
async def get_liveness() -> dict[str, bool]:
    return {"alive": True}


@router.get("", response_model=ReadinessReport)
async def get_readiness(request: Request) -> JSONResponse:
    database_ok, database_detail = await ping_database(getattr(request.app.state, "database", None))
    pipeline_ok = getattr(request.app.state, "pipeline", None) is not None
    checks = [
        ComponentCheck(name="database", ok=database_ok, detail=database_detail),
        ComponentCheck(
            name="pipeline",
            ok=pipeline_ok,
            detail=None if pipeline_ok else "Pipeline services are not built yet.",
        ),
    ]
    report = ReadinessReport(
        ready=all(check.ok for check in checks),
        checks=checks,
        review_source=settings.review_source,
        notifier=settings.notifier,
    )
    http_status = status.HTTP_200_OK if report.ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=http_status, content=report.model_dump(mode="json"))
