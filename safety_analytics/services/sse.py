import asyncio
import json
import logging
from typing import Any, Dict, Set

from fastapi import Request

logger = logging.getLogger(__name__)

SOS_ALERT_EVENT = "sos-alert"
CONNECTED_EVENT = "dashboard-connected"


def format_sse(event: str, data: Dict[str, Any]) -> str:
    """Frame a payload as a Server-Sent Events message."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


class DashboardBroadcaster:
    """Fan-out of events to every connected dashboard viewer, one queue per viewer."""

    def __init__(self):
        self._clients: Set[asyncio.Queue] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def connect(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._clients.add(queue)
        logger.info(f"New dashboard connected. Total dashboards: {self.client_count}")
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        self._clients.discard(queue)
        logger.info(f"Dashboard disconnected. Remaining dashboards: {self.client_count}")

    async def broadcast(self, event: str, payload: Dict[str, Any]) -> int:
        """
        Queue an event for every connected viewer.

        Delivery is best-effort: there is no acknowledgement or retry. Returns
        the number of viewers the event was queued for.
        """
        if not self._clients:
            logger.info("No connected dashboards to broadcast to")
            return 0

        message = format_sse(event, payload)
        # Copy so viewers disconnecting mid-broadcast don't mutate the set we iterate
        for client_queue in list(self._clients):
            await client_queue.put(message)

        logger.info(f"Broadcasted {event} to {self.client_count} dashboards")
        return self.client_count


async def dashboard_event_generator(request: Request, broadcaster: DashboardBroadcaster,
                                    keepalive: float = 15.0):
    """
    Yields server-sent events for a single dashboard viewer.

    Sends a connection event first, then relays broadcast events as they are
    queued, with a keep-alive comment whenever nothing arrives for `keepalive`
    seconds.
    """
    client_queue = broadcaster.connect()
    try:
        yield format_sse(CONNECTED_EVENT, {"message": "Connected to Women Safety Analytics Dashboard"})

        while True:
            # Check if the client has disconnected
            if await request.is_disconnected():
                logger.info("Dashboard client disconnected, stopping event stream.")
                break

            try:
                yield await asyncio.wait_for(client_queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
    finally:
        broadcaster.disconnect(client_queue)
