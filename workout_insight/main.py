"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from workout_insight.exceptions import AnalysisError, ErrorKind
from workout_insight.logging_config import configure_logging
from workout_insight.routers import analysis, usage


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Workout Insight API")


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError) -> JSONResponse:
    """Render classified analysis failures with a stable JSON body."""
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
    headers = {}
    if exc.retry_after_seconds is not None:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "error_kind": ErrorKind.VALIDATION_ERROR.value,
            "message": f"{location}: {message}" if location else message,
        },
    )


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Simple health probe for liveness checks."""
    return {"status": "ok"}


# Include routers
app.include_router(analysis.router)
app.include_router(usage.router)
