"""Radarr API client"""

from typing import Any

from loguru import logger

from fulfillment.apis.arr_api import (
    AddedItem,
    ArrAPI,
    ArrModel,
    ArrRejectedError,
    WantedPage,
)


class RadarrMovie(ArrModel):
    id: int
    title: str = ""
    tmdb_id: int | None = None
    has_file: bool = False
    downloaded: bool = False
    monitored: bool = False
    status: str | None = None
    quality_profile_id: int | None = None
    root_folder_path: str | None = None
    minimum_availability: str | None = None

    @property
    def is_downloaded(self) -> bool:
        return self.has_file or self.downloaded


class RadarrAPI(ArrAPI):
    """Handles Radarr API communication"""

    service_name = "Radarr"

    def get_movie_by_tmdb_id(self, tmdb_id: int) -> RadarrMovie | None:
        """Return the movie tracked by this instance, or None when it is not tracked."""

        response = self._request("GET", "movie", params={"tmdbId": tmdb_id})

        if response.status_code == 404:
            return None

        self._expect(response, 200, action="movie lookup")

        for movie in response.json() or []:
            if movie.get("tmdbId") == tmdb_id:
                return RadarrMovie.model_validate(movie)

        return None

    def lookup_movie(self, tmdb_id: int) -> dict[str, Any]:
        """Fetch the metadata Radarr needs to add a movie."""

        response = self._request("GET", "movie/lookup/tmdb", params={"tmdbId": tmdb_id})
        self._expect(response, 200, action="movie metadata lookup")

        data = response.json()
        if isinstance(data, list):
            data = data[0] if data else {}

        if not data:
            raise ArrRejectedError(
                f"Radarr instance {self.name} has no metadata for tmdb {tmdb_id}",
                status_code=response.status_code,
            )

        return data

    def add_movie(
        self,
        tmdb_id: int,
        quality_profile_id: int,
        root_folder_path: str,
        minimum_availability: str | None = None,
        search: bool = True,
    ) -> AddedItem:
        """
        Add a movie to Radarr.

        The instance is checked for the movie first; an existing movie is
        returned as-is (`already_existed=True`) instead of being added twice.

        Args:
            tmdb_id (int): TMDB id of the movie.
            quality_profile_id (int): Radarr quality profile id.
            root_folder_path (str): Root folder the movie is stored under.
            minimum_availability (str | None): `announced`, `inCinemas` or `released`.
            search (bool): Ask Radarr to search for the movie once added.

        Returns:
            AddedItem: The added (or already present) movie.

        Raises:
            ArrConnectionError: If the instance could not be reached.
            ArrRejectedError: If the instance refused the movie.
        """

        existing = self.get_movie_by_tmdb_id(tmdb_id)
        if existing:
            logger.log("ARR", f"Movie tmdb {tmdb_id} already in Radarr {self.name} as {existing.id}")
            return AddedItem(
                id=existing.id,
                title=existing.title,
                tmdb_id=existing.tmdb_id,
                monitored=existing.monitored,
                already_existed=True,
            )

        payload = {
            **self.lookup_movie(tmdb_id),
            "tmdbId": tmdb_id,
            "qualityProfileId": quality_profile_id,
            "rootFolderPath": root_folder_path,
            "monitored": True,
            "addOptions": {"searchForMovie": search},
        }
        if minimum_availability:
            payload["minimumAvailability"] = minimum_availability

        response = self._request("POST", "movie", json=payload)

        if self._is_already_added(response):
            existing = self.get_movie_by_tmdb_id(tmdb_id)
            if existing:
                return AddedItem(
                    id=existing.id,
                    title=existing.title,
                    tmdb_id=existing.tmdb_id,
                    monitored=existing.monitored,
                    already_existed=True,
                )

        self._expect(response, 200, 201, action="add movie")

        return AddedItem.model_validate(response.json())

    def get_missing_movies(self, page: int = 1, page_size: int = 100) -> WantedPage:
        return self.get_missing(page, page_size, monitored="true")
