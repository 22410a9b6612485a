"""TMDB API client"""

from pydantic import BaseModel, Field
from requests.exceptions import ConnectionError, Timeout

from fulfillment.utils.request import CircuitBreakerOpen, SmartSession

TMDB_BASE_URL = "https://api.themoviedb.org/3"


class TMDBApiError(Exception):
    """Base exception for TMDB API related errors"""


class TMDBEpisode(BaseModel):
    episode_number: int
    name: str = ""
    air_date: str | None = None


class TMDBSeasonDetails(BaseModel):
    season_number: int
    name: str = ""
    episodes: list[TMDBEpisode] = Field(default_factory=list)


class TMDBApi:
    """Handles TMDB API communication"""

    def __init__(self, api_key: str, base_url: str = TMDB_BASE_URL):
        self.session = SmartSession(
            base_url=base_url or TMDB_BASE_URL,
            retries=2,
            backoff_factor=0.3,
            timeout=15.0,
        )
        self.session.params.update({"api_key": api_key})

    def get_season_details(self, tmdb_id: int, season_number: int) -> TMDBSeasonDetails:
        try:
            response = self.session.get(f"tv/{tmdb_id}/season/{season_number}")
        except (ConnectionError, Timeout, CircuitBreakerOpen) as e:
            raise TMDBApiError(f"failed to contact TMDB: {e}") from e

        if not response.ok:
            raise TMDBApiError(
                f"TMDB returned status {response.status_code} for tv {tmdb_id} season {season_number}"
            )

        try:
            return TMDBSeasonDetails.model_validate(response.json())
        except ValueError as e:
            raise TMDBApiError(
                f"TMDB returned an invalid body for tv {tmdb_id} season {season_number}: {e}"
            ) from e

    def get_season_episode_count(self, tmdb_id: int, season_number: int) -> int:
        """Authoritative episode count of a season."""

        return len(self.get_season_details(tmdb_id, season_number).episodes)

    def close(self):
        self.session.close()
