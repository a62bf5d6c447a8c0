import logging
import time
from uuid import uuid4

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError

from bay_scheduler.api.v1.analytics import router as analytics_router
from bay_scheduler.api.v1.appointments import router as appointments_router
from bay_scheduler.api.v1.availability import router as availability_router
from bay_scheduler.api.v1.cron import router as cron_router
from bay_scheduler.api.v1.voice import router as voice_router
from bay_scheduler.core.config import settings
from bay_scheduler.core.exceptions import http_exception_handler, validation_exception_handler
from bay_scheduler.core.logging import setup_logging
from bay_scheduler.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from bay_scheduler.core.request_context import request_id_ctx_var

setup_logging(settings.log_level)
logger = logging.getLogger("bay_scheduler.request")

app = FastAPI(title="Bay Scheduler API", version="0.1.0")
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

for router in (availability_router, appointments_router, voice_router, cron_router, analytics_router):
    app.include_router(router)


def _route_path(request: Request) -> str:
    # Route template, not the raw URL, keeps appointment ids out of metric labels.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def _observe(request: Request, status_code: int, started: float) -> tuple[str, float]:
    path = _route_path(request)
    elapsed = time.perf_counter() - started
    REQUEST_COUNT.labels(method=request.method, path=path, status_code=status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)
    return path, elapsed * 1000


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    started = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            path, duration_ms = _observe(request, 500, started)
            logger.exception(
                "request_failed method=%s path=%s status=500 duration_ms=%.2f",
                request.method,
                path,
                duration_ms,
            )
            raise

        path, duration_ms = _observe(request, response.status_code, started)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            path,
            response.status_code,
            duration_ms,
        )
        return response
    finally:
        request_id_ctx_var.reset(token)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
