from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, Field

T = TypeVar("T")


@dataclass(frozen=True)
class DirectoryEntry:
    """Last known location of a user."""
    username: str
    latitude: float
    longitude: float
    last_seen: datetime


@dataclass(frozen=True)
class IncidentRecord:
    """A crime incident loaded from the CSV source."""
    id: str
    latitude: float
    longitude: float
    category: str
    # Original CSV row, kept for diagnostics only
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "category": self.category,
        }


@dataclass(frozen=True)
class ProximityResult(Generic[T]):
    """An item annotated with its distance in meters from a query center."""
    item: T
    distance: int


@dataclass(frozen=True)
class DatasetStats:
    total: int
    counts_by_category: Dict[str, int]
    loaded: bool


# Pydantic models for API request/response
class SOSRequest(BaseModel):
    """
    Body of an SOS alert submission.

    Values are validated by the dispatcher rather than by pydantic so that bad
    coordinates produce the same error payload whatever their JSON type.
    """
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "identity"))
    latitude: Any = None
    longitude: Any = None


class LocationUpdate(SOSRequest):
    """Explicit location registration for a user."""


class NearbyUser(BaseModel):
    username: str
    latitude: float
    longitude: float
    distance_meters: int
    last_seen: datetime


class SOSAlert(BaseModel):
    id: str
    username: str
    latitude: float
    longitude: float
    timestamp: datetime
    type: str = "SOS_ALERT"


class SOSResponse(BaseModel):
    success: bool
    message: str
    alert: SOSAlert
    nearby_users: List[NearbyUser]
    dashboard_notified: bool
