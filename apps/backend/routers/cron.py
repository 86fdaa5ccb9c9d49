"""Scheduler trigger for outbox processing."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from apps.backend.auth import require_cron_secret
from apps.backend.services.notification_errors import OutboxStoreError
from apps.backend.services.outbox_processor import run_outbox_cycle

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/process-outbox", methods=["GET", "POST"])
def process_outbox(_: None = Depends(require_cron_secret)):
    try:
        result = run_outbox_cycle()
    except OutboxStoreError as e:
        logger.error("cron_process_outbox_failed error=%s", e)
        return JSONResponse(
            {"success": False, "error": "Outbox processing failed", "details": str(e)},
            status_code=500,
        )
    return result.to_response()
