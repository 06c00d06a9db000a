from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request

from .config import Settings
from ..db.directory import DirectoryStore
from ..db.incidents import IncidentDataset
from ..services.dispatcher import AlertDispatcher
from ..services.sse import DashboardBroadcaster


@dataclass
class AppContext:
    """Holds the stores and services shared by every request of one application instance."""
    settings: Settings
    directory: DirectoryStore = field(default_factory=DirectoryStore)
    broadcaster: DashboardBroadcaster = field(default_factory=DashboardBroadcaster)
    dataset: Optional[IncidentDataset] = None
    dispatcher: Optional[AlertDispatcher] = None

    def __post_init__(self):
        if self.dataset is None:
            self.dataset = IncidentDataset(self.settings.crime_data_path)
        if self.dispatcher is None:
            self.dispatcher = AlertDispatcher(self.directory, self.broadcaster,
                                              nearby_radius=self.settings.nearby_radius)


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context of the application serving the request."""
    return request.app.state.context
