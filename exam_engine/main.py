"""FastAPI entrypoint for the exam attempt & scoring service."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from exam_engine.config import get_settings
from exam_engine.database import create_db_and_tables
from exam_engine.deps import close_embedding_client
from exam_engine.errors import ExamEngineError
from exam_engine.logger import setup_logging
from exam_engine.routers import answers as answers_router_module
from exam_engine.routers import attempts as attempts_router_module
from exam_engine.routers import results as results_router_module
from exam_engine.routers import scoring as scoring_router_module

logger = logging.getLogger(__name__)

settings = get_settings()
app = FastAPI(title=settings.APP_NAME)


@app.exception_handler(ExamEngineError)
async def exam_engine_exception_handler(request: Request, exc: ExamEngineError):
    """Render domain errors as JSON with the error's own status code."""
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__},
    )


# Routers
app.include_router(attempts_router_module.router, prefix="/attempts", tags=["attempts"])
app.include_router(answers_router_module.router, prefix="/answers", tags=["answers"])
app.include_router(scoring_router_module.router, prefix="/scoring", tags=["scoring"])
app.include_router(results_router_module.router, prefix="/results", tags=["results"])


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def on_startup():
    """Configure logging and initialize the database schema."""
    setup_logging(settings.LOG_LEVEL)
    create_db_and_tables()
    logger.info("%s started", settings.APP_NAME)


@app.on_event("shutdown")
def on_shutdown():
    close_embedding_client()
    logger.info("%s stopped", settings.APP_NAME)
