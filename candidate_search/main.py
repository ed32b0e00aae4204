from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from candidate_search.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    HealthCheckMiddleware,
    PerformanceMiddleware,
    RequestLoggingMiddleware,
    register_exception_handlers,
)
from candidate_search.routers import search
from candidate_search.utils.logging_config import configure_for_environment, get_logger

configure_for_environment()
logger = get_logger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Candidate Search API {API_VERSION} starting")

    try:
        from candidate_search.services.db import init_indexes
        await init_indexes()
    except Exception as e:
        # searches still work; candidate_id lookups are just unindexed
        logger.warning(f"Skipping index setup: {e}")

    pipeline = search.get_pipeline()
    retrieval = pipeline.retrieval
    logger.info(
        f"Match pipeline ready - embedding={pipeline.embedder.provider}, "
        f"justification={pipeline.synthesizer.provider}, "
        f"thresholds={retrieval.primary_threshold}/{retrieval.fallback_threshold}, limit={retrieval.limit}"
    )

    yield

    logger.info("Candidate Search API stopped")


app = FastAPI(title="Candidate Search API", version=API_VERSION, lifespan=lifespan)

# add_middleware prepends, so this list reads innermost -> outermost
app.add_middleware(PerformanceMiddleware, slow_request_threshold=2.0)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(HealthCheckMiddleware)
app.add_middleware(ExceptionHandlerMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.get("/")
@app.head("/")
async def root():
    return {"message": "Candidate Search API", "version": API_VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


app.include_router(search.router, prefix="/api")
