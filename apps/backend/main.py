"""FastAPI entry point."""
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from apps.backend.config import configure_logging
from apps.backend.middleware.trace_id import TraceIdMiddleware
from apps.backend.routers import health, cron, admin_outbox

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="Helpdesk Notification Outbox",
    description="Outbox processing for campus helpdesk ticket notifications",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(TraceIdMiddleware)

app.include_router(health.router, tags=["System"])
app.include_router(cron.router, prefix="/v1/cron", tags=["Cron"])
app.include_router(admin_outbox.router, prefix="/v1/admin/outbox", tags=["Admin Outbox"])


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unhandled errors become a JSON 500 carrying the trace_id."""
    trace_id = getattr(request.state, "trace_id", None) or str(uuid.uuid4())[:16]
    logger.exception("Unhandled exception trace_id=%s path=%s", trace_id, request.url.path)
    resp = JSONResponse(
        content={"error": "internal_error", "trace_id": trace_id, "message": "Internal server error"},
        status_code=500,
    )
    resp.headers["X-Trace-Id"] = trace_id
    return resp
