"""
Read-side views over season availability.

These are assembled on demand from SeasonAvailability rows and never persisted.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fulfillment.media.state import AvailabilityStatus


class SeasonAvailabilityInfo(BaseModel):
    """One season of a ShowAvailability view"""

    model_config = ConfigDict(from_attributes=True)

    tmdb_id: int
    season_number: int
    episode_count: int
    available_episodes: int
    is_complete: bool
    last_updated: datetime | None = None


class ShowAvailability(BaseModel):
    """Overall availability of a title, seasons ordered by season number"""

    tmdb_id: int
    title: str | None = None
    total_seasons: int = 0
    seasons: list[SeasonAvailabilityInfo] = Field(default_factory=list)
    overall_status: AvailabilityStatus = AvailabilityStatus.NotAvailable

    @classmethod
    def not_available(cls, tmdb_id: int, title: str | None = None) -> "ShowAvailability":
        return cls(tmdb_id=tmdb_id, title=title)
