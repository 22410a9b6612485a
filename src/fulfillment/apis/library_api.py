"""Emby/Jellyfin library index client"""

from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_pascal
from requests.exceptions import ConnectionError, Timeout

from fulfillment.utils.request import CircuitBreakerOpen, SmartResponse, SmartSession

ITEM_FIELDS = "ProviderIds,Path,ProductionYear,ParentIndexNumber,IndexNumber,SeriesId,SeasonId"


class LibraryAPIError(Exception):
    """Base exception for LibraryAPI related errors"""


class LibraryItem(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_pascal, populate_by_name=True, extra="ignore"
    )

    id: str
    name: str = ""
    type: str | None = None
    provider_ids: dict[str, str] = Field(default_factory=dict)
    parent_index_number: int | None = None
    index_number: int | None = None
    series_id: str | None = None

    @property
    def tmdb_id(self) -> str | None:
        for key, value in self.provider_ids.items():
            if key.lower() == "tmdb":
                return value
        return None


class LibraryAPI:
    """
    Handles Emby/Jellyfin API communication.

    Both servers expose the same `Items` and `Shows/{id}/Episodes` endpoints,
    so one client serves either; `provider` is only used for logging.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        provider: str = "emby",
        timeout: float = 30.0,
        retries: int = 2,
    ):
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.session = SmartSession(
            base_url=self.base_url, retries=retries, backoff_factor=0.3, timeout=timeout
        )
        self.session.params.update({"api_key": api_key})

    def validate(self) -> bool:
        """Validate API connection"""

        try:
            return self._get("System/Info").ok
        except LibraryAPIError as e:
            logger.error(f"{self.provider} is not reachable: {e}")

        return False

    def get_movie_by_tmdb_id(self, tmdb_id: int) -> LibraryItem | None:
        items = self._find_items("Movie", tmdb_id)
        return items[0] if items else None

    def get_series_by_tmdb_id(self, tmdb_id: int) -> LibraryItem | None:
        items = self._find_items("Series", tmdb_id)
        return items[0] if items else None

    def get_episodes_by_show(self, tmdb_id: int) -> list[LibraryItem]:
        """Every episode of the series in the library; empty when the series is absent."""

        series = self.get_series_by_tmdb_id(tmdb_id)
        if not series:
            return []

        return self._episodes(series.id)

    def get_episodes_by_show_and_season(
        self, tmdb_id: int, season_number: int
    ) -> list[LibraryItem]:
        series = self.get_series_by_tmdb_id(tmdb_id)
        if not series:
            return []

        return [
            episode
            for episode in self._episodes(series.id, Season=season_number)
            if episode.parent_index_number == season_number
        ]

    def close(self):
        self.session.close()

    def _find_items(self, item_type: str, tmdb_id: int) -> list[LibraryItem]:
        response = self._get(
            "Items",
            params={
                "IncludeItemTypes": item_type,
                "Recursive": "true",
                "Fields": ITEM_FIELDS,
                "AnyProviderIdEquals": f"tmdb.{tmdb_id}",
            },
        )
        # Servers that ignore AnyProviderIdEquals return unrelated items
        matches = [item for item in self._items(response) if item.tmdb_id == str(tmdb_id)]
        logger.trace(
            f"{self.provider}: {len(matches)} {item_type.lower()} item(s) for tmdb {tmdb_id}"
        )

        return matches

    def _episodes(self, series_id: str, **params: Any) -> list[LibraryItem]:
        response = self._get(
            f"Shows/{series_id}/Episodes", params={"Fields": ITEM_FIELDS, **params}
        )
        return self._items(response)

    def _items(self, response: SmartResponse) -> list[LibraryItem]:
        if not response.ok:
            raise LibraryAPIError(
                f"{self.provider} returned status {response.status_code} for {response.url}"
            )
        try:
            body = response.json()
            if not isinstance(body, dict):
                raise ValueError(f"expected an object, got {type(body).__name__}")
            return [LibraryItem.model_validate(item) for item in body.get("Items") or []]
        except (ValidationError, ValueError, TypeError) as e:
            raise LibraryAPIError(f"{self.provider} returned an invalid response: {e}") from e

    def _get(self, path: str, **kwargs: Any) -> SmartResponse:
        try:
            return self.session.get(path, **kwargs)
        except (ConnectionError, Timeout, CircuitBreakerOpen) as e:
            raise LibraryAPIError(f"failed to contact {self.provider}: {e}") from e
