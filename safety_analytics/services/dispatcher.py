import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Tuple

from ..core.config import DEFAULT_NEARBY_RADIUS
from ..core.errors import MissingFields
from ..core.models import DirectoryEntry, ProximityResult
from ..db.directory import DirectoryStore
from ..utils.geodesy import parse_coordinates
from .sse import SOS_ALERT_EVENT, DashboardBroadcaster

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ["username", "latitude", "longitude"]


@dataclass
class SOSDispatch:
    """Outcome of a processed SOS alert."""
    alert: Dict[str, Any]
    nearby: List[ProximityResult[DirectoryEntry]]
    dashboards_notified: int


def validate_submission(username: Any, latitude: Any, longitude: Any) -> Tuple[str, float, float]:
    """Check a username/location submission, returning the coerced values."""
    # Zero is a valid coordinate, only absent values count as missing
    if not isinstance(username, str) or not username.strip() or latitude is None or longitude is None:
        raise MissingFields(REQUIRED_FIELDS)
    lat, lng = parse_coordinates(latitude, longitude)
    return username, lat, lng


def new_alert_id() -> str:
    return f"sos_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def nearby_payload(nearby: List[ProximityResult[DirectoryEntry]]) -> List[Dict[str, Any]]:
    return [
        {
            "username": result.item.username,
            "latitude": result.item.latitude,
            "longitude": result.item.longitude,
            "distance_meters": result.distance,
        }
        for result in nearby
    ]


class AlertDispatcher:
    """
    Handles an incoming SOS alert: validates it, finds nearby users,
    notifies the dashboards and records the sender's location.
    """

    def __init__(self, directory: DirectoryStore, broadcaster: DashboardBroadcaster,
                 nearby_radius: float = DEFAULT_NEARBY_RADIUS):
        self.directory = directory
        self.broadcaster = broadcaster
        self.nearby_radius = nearby_radius

    async def dispatch(self, username: Any, latitude: Any, longitude: Any) -> SOSDispatch:
        """
        Process an SOS alert.

        Raises MissingFields or InvalidCoordinates before any state changes.
        """
        username, lat, lng = validate_submission(username, latitude, longitude)

        timestamp: datetime = self.directory.now()
        alert = {
            "id": new_alert_id(),
            "username": username,
            "latitude": lat,
            "longitude": lng,
            "timestamp": timestamp,
            "type": "SOS_ALERT",
        }

        nearby = self.directory.find_nearby(lat, lng, self.nearby_radius, exclude=username)
        logger.info(f"SOS alert received from {username} at [{lat}, {lng}], "
                    f"found {len(nearby)} nearby users")

        notified = 0
        if self.broadcaster.client_count > 0:
            notified = await self.broadcaster.broadcast(SOS_ALERT_EVENT, {
                "alert": alert,
                "nearby_users": nearby_payload(nearby),
            })

        self.directory.upsert(username, lat, lng, timestamp)
        return SOSDispatch(alert=alert, nearby=nearby, dashboards_notified=notified)
