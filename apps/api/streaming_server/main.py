"""FastAPI application for the BBB streaming server."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .core.config import settings
from .core.errors import CapacityExceeded, StreamError, ValidationError
from .routers import streams as streams_router

logger = logging.getLogger(__name__)

app = FastAPI(title="BBB Streaming Server", version="0.1.0")

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(streams_router.router, prefix="/bot", tags=["streams"])


def _error_response(exc: StreamError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, CapacityExceeded):
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "kind": exc.kind},
        headers=headers or None,
    )


@app.exception_handler(StreamError)
async def stream_error_handler(request: Request, exc: StreamError) -> JSONResponse:
    """Report classified controller failures to the caller."""

    logger.warning("%s %s failed with %s: %s", request.method, request.url.path, exc.kind, exc.message)
    return _error_response(exc)


@app.exception_handler(RequestValidationError)
async def body_validation_handler(request: Request, exc: RequestValidationError) -> Response:
    """Stream endpoints report malformed bodies in their own error shape."""

    if not request.url.path.startswith("/bot/"):
        return await request_validation_exception_handler(request, exc)

    fields = sorted(
        {
            error["loc"][-1]
            for error in exc.errors()
            if len(error.get("loc") or ()) > 1 and isinstance(error["loc"][-1], str)
        }
    )
    message = f"Invalid request body: {', '.join(fields)}" if fields else "Invalid request body"
    return _error_response(ValidationError(message))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer in the stream error shape; the server logs the traceback."""

    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "kind": "internal_error"},
    )


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""

    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
