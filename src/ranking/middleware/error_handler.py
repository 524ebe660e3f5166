"""Global error handler: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ranking.exceptions import InvalidTransitionError, RecomputeInProgressError, UpstreamUnavailableError

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_exception_handler(request: Request, exc: UpstreamUnavailableError) -> JSONResponse:
        """Collaborator outage surfaces as 502."""
        logger.warning(
            "upstream_unavailable",
            path=request.url.path,
            service=exc.service,
            reason=exc.reason,
        )
        return JSONResponse(
            status_code=502,
            content={"detail": f"{exc.service}_unavailable"},
        )

    @app.exception_handler(RecomputeInProgressError)
    async def recompute_conflict_handler(_request: Request, _exc: RecomputeInProgressError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": "recompute_in_progress"},
        )

    @app.exception_handler(InvalidTransitionError)
    async def transition_exception_handler(_request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-serializable context (e.g. raised ValueErrors) from pydantic errors."""
    errors = []
    for err in exc.errors():
        cleaned = {k: v for k, v in err.items() if k != "ctx"}
        if "ctx" in err:
            cleaned["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(cleaned)
    return errors
