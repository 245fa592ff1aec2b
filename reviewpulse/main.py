import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reviewpulse.config import settings
from reviewpulse.database import ensure_indexes, mongo_database
from reviewpulse.dependencies import build_pipeline
from reviewpulse.routers.business import router as business_router
from reviewpulse.routers.health import router as health_router
from reviewpulse.routers.notifications import router as notifications_router
from reviewpulse.routers.reviews import router as reviews_router
from reviewpulse.store import MongoReviewStore

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with mongo_database(settings) as database:
        await ensure_indexes(database)
        app.state.database = database
        app.state.pipeline = build_pipeline(MongoReviewStore(database), settings)
        try:
            yield
        finally:
            app.state.pipeline = None
            app.state.database = None


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Review ingestion, sentiment classification and owner alerts.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(business_router)
app.include_router(reviews_router)
app.include_router(notifications_router)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
