import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.models import DirectoryEntry, ProximityResult
from ..utils.geodesy import coerce_number, distance_meters, is_valid_coordinate

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Demo users around Times Square so a fresh dashboard has someone to find
DEMO_USERS = [
    ("Sarah_M", 40.7580, -73.9855),
    ("Emma_K", 40.7520, -73.9860),
    ("Jessica_L", 40.7610, -73.9840),
    ("Amanda_R", 40.7490, -73.9857),
    ("Michelle_T", 40.7530, -73.9880),
    ("Lisa_H", 40.7560, -73.9870),
    ("Rachel_B", 40.7500, -73.9900),
    ("Nicole_W", 40.7570, -73.9830),
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DirectoryStore:
    """
    In-memory registry of users and their last reported location.

    All operations are synchronous and run to completion on the event loop,
    so readers never observe a half-written entry. Eviction is exposed as
    `evict_older_than`; scheduling it is the caller's job.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._entries: Dict[str, DirectoryEntry] = {}

    def now(self) -> datetime:
        return self._clock()

    def upsert(self, username: Any, latitude: Any, longitude: Any,
               timestamp: Optional[datetime] = None) -> bool:
        """
        Insert or overwrite the location of a user.

        Returns False, without touching the store, when the username is empty
        or the coordinates are missing, non-numeric or out of range. A
        coordinate of exactly 0 is accepted.
        """
        lat = coerce_number(latitude)
        lng = coerce_number(longitude)
        if not isinstance(username, str) or not username.strip() or lat is None or lng is None:
            logger.warning(f"Invalid user data rejected: username={username!r}, "
                           f"latitude={latitude!r}, longitude={longitude!r}")
            return False
        if not is_valid_coordinate(lat, lng):
            logger.warning(f"Out of range location rejected for {username}: [{lat}, {lng}]")
            return False

        self._entries[username] = DirectoryEntry(
            username=username,
            latitude=lat,
            longitude=lng,
            last_seen=timestamp or self.now(),
        )
        logger.debug(f"User {username} location updated: [{lat}, {lng}]")
        return True

    def seed(self, users: Iterable[tuple] = DEMO_USERS) -> int:
        """Register (username, latitude, longitude) tuples as seen now. Returns how many were accepted."""
        added = sum(1 for username, lat, lng in users if self.upsert(username, lat, lng))
        logger.info(f"Initialized {added} demo users for nearby detection")
        return added

    def find_nearby(self, latitude: Any, longitude: Any, radius: float,
                    exclude: Optional[str] = None) -> List[ProximityResult[DirectoryEntry]]:
        """
        Users within `radius` meters of the given point, closest first.

        The excluded username (usually the SOS sender) is never returned.
        Invalid center coordinates yield an empty list.
        """
        lat = coerce_number(latitude)
        lng = coerce_number(longitude)
        if lat is None or lng is None:
            logger.warning(f"Invalid coordinates provided to find_nearby: [{latitude!r}, {longitude!r}]")
            return []

        nearby = []
        for username, entry in self._entries.items():
            if exclude and username == exclude:
                continue
            if not (math.isfinite(entry.latitude) and math.isfinite(entry.longitude)):
                continue
            distance = distance_meters(lat, lng, entry.latitude, entry.longitude)
            if distance <= radius:
                nearby.append(ProximityResult(item=entry, distance=distance))

        # sorted() is stable, so ties keep insertion order
        nearby = sorted(nearby, key=lambda result: result.distance)
        logger.debug(f"Found {len(nearby)} users within {radius}m of [{lat}, {lng}]")
        return nearby

    def get(self, username: str) -> Optional[DirectoryEntry]:
        return self._entries.get(username)

    def all(self) -> List[DirectoryEntry]:
        return list(self._entries.values())

    def remove(self, username: str) -> bool:
        removed = self._entries.pop(username, None) is not None
        if removed:
            logger.debug(f"User {username} removed from directory")
        return removed

    def count(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, username: object) -> bool:
        return username in self._entries

    def evict_older_than(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Remove every entry last seen more than `max_age` ago. Returns the number removed."""
        now = now or self.now()
        stale = [username for username, entry in self._entries.items()
                 if now - entry.last_seen > max_age]
        for username in stale:
            del self._entries[username]

        if stale:
            logger.info(f"Cleaned up {len(stale)} users not seen for more than {max_age}")
        return len(stale)
