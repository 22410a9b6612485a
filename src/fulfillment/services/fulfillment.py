"""Detection of requests whose content is acquired and playable."""

from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from loguru import logger
from pydantic import ValidationError
from sqla_wrapper import SQLAlchemy

from fulfillment.apis.arr_api import ArrAPI, ArrAPIError
from fulfillment.apis.library_api import LibraryAPI, LibraryAPIError
from fulfillment.db.db import db_session
from fulfillment.db.db_functions import fulfill_request
from fulfillment.errors import ConfigurationError
from fulfillment.media.request import MediaRequest
from fulfillment.media.state import MediaType, RequestStatus, ServiceType
from fulfillment.services.dispatcher import ClientFactory, InstanceSource
from fulfillment.services.instance_selector import select_instance

T = TypeVar("T")


class FulfillmentDetector:
    """
    Decides when an approved request is fulfilled.

    A request is only fulfilled when the acquisition backend and the library
    index independently confirm the content. Query failures on either side
    mean "not yet", never an error.
    """

    def __init__(
        self,
        db: SQLAlchemy,
        instances: InstanceSource,
        clients: ClientFactory,
        library: LibraryAPI | None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.instances = instances
        self.clients = clients
        self.library = library
        self.clock = clock

    def check_status(self, request: MediaRequest) -> bool:
        """
        Fulfill `request` if its content is downloaded and in the library.

        Returns:
            bool: True if this call transitioned the request to fulfilled.
        """

        if request.status != RequestStatus.Approved.value:
            logger.debug(f"Skipping {request.log_string}: status is {request.status}")
            return False

        if not request.tmdb_id:
            logger.warning(f"Cannot check {request.log_string}: no TMDB id")
            return False

        if not self.library:
            logger.warning(
                f"Cannot confirm {request.log_string}: no library index configured"
            )
            return False

        if request.kind == MediaType.Movie:
            ready = self._movie_ready(request)
        elif request.kind == MediaType.TV:
            ready = self._series_ready(request)
        else:
            logger.warning(f"Cannot check {request.log_string}: unsupported media type {request.media_type}")
            return False

        if not ready:
            return False

        with db_session(self.db) as session:
            fulfilled = fulfill_request(session, request.id, self.clock())

        if fulfilled:
            logger.log("FULFILLMENT", f"Fulfilled {request.log_string}")
        else:
            logger.debug(f"{request.log_string} was no longer approved, nothing to do")

        return fulfilled

    def _movie_ready(self, request: MediaRequest) -> bool:
        movie = self._query_backend(
            request,
            ServiceType.Radarr,
            lambda client: client.get_movie_by_tmdb_id(request.tmdb_id),
        )
        if not movie or not movie.is_downloaded:
            logger.debug(f"{request.log_string} is not downloaded yet")
            return False

        in_library = self._query_library(
            request, lambda library: library.get_movie_by_tmdb_id(request.tmdb_id)
        )
        if not in_library:
            logger.debug(f"{request.log_string} is downloaded but not in the library yet")
            return False

        return True

    def _series_ready(self, request: MediaRequest) -> bool:
        series = self._query_backend(
            request,
            ServiceType.Sonarr,
            lambda client: client.get_series_by_tmdb_id(request.tmdb_id),
        )
        if not series or series.statistics.episode_file_count <= 0:
            logger.debug(f"{request.log_string} has no episode files yet")
            return False

        in_library = self._query_library(
            request, lambda library: library.get_series_by_tmdb_id(request.tmdb_id)
        )
        if not in_library:
            logger.debug(f"{request.log_string} has files but is not in the library yet")
            return False

        episodes = self._query_library(
            request, lambda library: library.get_episodes_by_show(request.tmdb_id)
        )
        if not episodes:
            logger.debug(f"{request.log_string} has no episodes in the library yet")
            return False

        return True

    def _query_backend(
        self,
        request: MediaRequest,
        service_type: ServiceType,
        query: Callable[[ArrAPI], T],
    ) -> T | None:
        try:
            instance = select_instance(
                self.instances(service_type), request.is_4k, service_type
            )
            client = self.clients(instance)
            return query(client)
        except (ConfigurationError, ArrAPIError, ValidationError) as e:
            logger.warning(
                f"Could not query {service_type.value} for {request.log_string}: {e}"
            )
            return None

    def _query_library(
        self, request: MediaRequest, query: Callable[[LibraryAPI], T]
    ) -> T | None:
        try:
            return query(self.library)
        except (LibraryAPIError, ValidationError) as e:
            logger.log("LIBRARY", f"Could not query the library for {request.log_string}: {e}")
            return None
