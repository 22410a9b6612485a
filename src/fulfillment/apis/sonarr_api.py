"""Sonarr API client"""

from collections.abc import Sequence
from typing import Any

from loguru import logger
from pydantic import Field

from fulfillment.apis.arr_api import (
    AddedItem,
    ArrAPI,
    ArrModel,
    ArrRejectedError,
    WantedPage,
)


class SeriesStatistics(ArrModel):
    episode_file_count: int = 0
    episode_count: int = 0
    total_episode_count: int = 0
    percent_of_episodes: float = 0.0


class SonarrSeries(ArrModel):
    id: int
    title: str = ""
    tmdb_id: int | None = None
    tvdb_id: int | None = None
    monitored: bool = False
    status: str | None = None
    quality_profile_id: int | None = None
    root_folder_path: str | None = None
    statistics: SeriesStatistics = Field(default_factory=SeriesStatistics)


def build_season_monitoring(
    lookup_seasons: list[dict[str, Any]], seasons: Sequence[int]
) -> list[dict[str, Any]]:
    """
    Season list for an add payload monitoring only `seasons`.

    Seasons known to the lookup keep their metadata; requested seasons the
    lookup did not return are appended so the request is never silently narrowed.
    """

    wanted = set(seasons)
    result = [
        {**season, "monitored": season.get("seasonNumber") in wanted}
        for season in lookup_seasons
    ]
    known = {season.get("seasonNumber") for season in lookup_seasons}
    result.extend(
        {"seasonNumber": number, "monitored": True}
        for number in sorted(wanted - known)
    )

    return sorted(result, key=lambda season: season.get("seasonNumber", 0))


class SonarrAPI(ArrAPI):
    """Handles Sonarr API communication"""

    service_name = "Sonarr"

    def get_series_by_tmdb_id(self, tmdb_id: int) -> SonarrSeries | None:
        """Return the series tracked by this instance, or None when it is not tracked."""

        response = self._request("GET", "series", params={"tmdbId": tmdb_id})

        if response.status_code == 404:
            return None

        self._expect(response, 200, action="series lookup")

        # Older instances ignore the tmdbId filter and return every series
        for series in response.json() or []:
            if series.get("tmdbId") == tmdb_id:
                return SonarrSeries.model_validate(series)

        return None

    def lookup_series(self, tmdb_id: int) -> dict[str, Any]:
        """Fetch the metadata Sonarr needs to add a series."""

        response = self._request("GET", "series/lookup", params={"term": f"tmdb:{tmdb_id}"})
        self._expect(response, 200, action="series metadata lookup")

        results = response.json() or []
        for result in results:
            if result.get("tmdbId") == tmdb_id:
                return result

        raise ArrRejectedError(
            f"Sonarr instance {self.name} has no metadata for tmdb {tmdb_id}",
            status_code=response.status_code,
        )

    def add_series(
        self,
        tmdb_id: int,
        quality_profile_id: int,
        root_folder_path: str,
        seasons: Sequence[int] | None = None,
        search: bool = True,
    ) -> AddedItem:
        """
        Add a series to Sonarr.

        With `seasons`, only those seasons are monitored; without, every season is.
        A series the instance already tracks is returned as-is
        (`already_existed=True`); its monitoring is left untouched.

        Raises:
            ArrConnectionError: If the instance could not be reached.
            ArrRejectedError: If the instance refused the series.
        """

        existing = self.get_series_by_tmdb_id(tmdb_id)
        if existing:
            logger.log("ARR", f"Series tmdb {tmdb_id} already in Sonarr {self.name} as {existing.id}")
            return AddedItem(
                id=existing.id,
                title=existing.title,
                tmdb_id=existing.tmdb_id,
                monitored=existing.monitored,
                already_existed=True,
            )

        lookup = self.lookup_series(tmdb_id)
        payload = {
            **lookup,
            "tmdbId": tmdb_id,
            "qualityProfileId": quality_profile_id,
            "rootFolderPath": root_folder_path,
            "monitored": True,
            "seasonFolder": True,
            "addOptions": {"searchForMissingEpisodes": search},
        }

        if seasons:
            # Unset monitor type makes Sonarr honour the per-season flags
            payload["seasons"] = build_season_monitoring(lookup.get("seasons") or [], seasons)
        else:
            payload["addOptions"]["monitor"] = "all"

        response = self._request("POST", "series", json=payload)

        if self._is_already_added(response):
            existing = self.get_series_by_tmdb_id(tmdb_id)
            if existing:
                return AddedItem(
                    id=existing.id,
                    title=existing.title,
                    tmdb_id=existing.tmdb_id,
                    monitored=existing.monitored,
                    already_existed=True,
                )

        self._expect(response, 200, 201, action="add series")

        return AddedItem.model_validate(response.json())

    def search_series(self, series_id: int) -> int | None:
        return self.command("SeriesSearch", seriesIds=[series_id])

    def get_missing_episodes(self, page: int = 1, page_size: int = 100) -> WantedPage:
        return self.get_missing(page, page_size, includeSeries="true", monitored="true")
