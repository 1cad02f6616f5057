"""Client event ingestion — POST /v1/events."""

import logging

from fastapi import APIRouter, Response

from .event_logger import EventLogger
from .models import LogEventRequest

logger = logging.getLogger(__name__)


def create_router(event_logger: EventLogger) -> APIRouter:
    router = APIRouter(tags=["v1"])

    @router.post("/v1/events", status_code=200)
    async def log_event(request: LogEventRequest):
        """Record a client-side event (view, select, dismiss ...)."""
        event_logger.log(
            request.type,
            {
                "completion_id": request.completion_id,
                "choice_index": request.choice_index,
                "view_id": request.view_id,
                "elapsed": request.elapsed,
            },
        )
        return Response(status_code=200)

    return router
