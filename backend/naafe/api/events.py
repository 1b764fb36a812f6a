"""Events API router for the real-time SSE stream."""

import json
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from naafe.api.deps import get_current_user
from naafe.core.events import event_bus
from naafe.models.user import User

router = APIRouter()


@router.get("/events")
async def event_stream(
    request: Request,
    current_user: User = Depends(get_current_user)
):
    """
    Server-Sent Events (SSE) stream of updates on your offers.

    Clients re-fetch the offer named in each event.

    Usage:
        const source = new EventSource('/api/events');
        source.addEventListener('negotiation:update', (e) => {
            refetch(JSON.parse(e.data).offer_id);
        });
    """
    user_id = current_user.id

    async def generate():
        async for event in event_bus.subscribe(user_id=user_id):
            # Check if client disconnected
            if await request.is_disconnected():
                break

            yield {
                "event": event["type"],
                "data": json.dumps(event["data"])
            }

    return EventSourceResponse(generate())
