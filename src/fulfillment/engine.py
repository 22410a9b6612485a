"""
Reconciliation engine: the entry points an external caller (approval action,
cron, CLI) uses to drive requests from approved to fulfilled.
"""

from collections.abc import Callable, Sequence
from datetime import datetime
from functools import wraps

from kink import di
from loguru import logger
from sqla_wrapper import SQLAlchemy

from fulfillment.apis import ArrClients, LibraryAPI, LibraryAPIError, TMDBApi
from fulfillment.apis.arr_api import ArrAPI
from fulfillment.db.db import create_db, db_session, validate_database
from fulfillment.db.db_functions import (
    get_instances_by_type,
    get_request_by_id,
    get_requested_series_tmdb_ids,
    get_requests_by_status,
    get_series_requests_for_title,
    update_season_statuses,
)
from fulfillment.errors import (
    EngineNotRunning,
    FulfillmentError,
    InvalidMediaType,
    RequestNotFound,
    StorageUnavailable,
)
from fulfillment.media import (
    AcquisitionInstance,
    AvailabilityStatus,
    MediaRequest,
    MediaType,
    RequestStatus,
    SeasonAvailability,
    ServiceType,
    ShowAvailability,
)
from fulfillment.services import (
    AcquisitionDispatcher,
    AvailabilityReconciler,
    CalendarResult,
    FulfillmentDetector,
    UpcomingCalendar,
    build_season_statuses,
)
from fulfillment.settings.manager import settings_manager
from fulfillment.settings.models import AppModel
from fulfillment.utils import benchmark


def requires_running(func):
    @wraps(func)
    def wrapper(self: "ReconciliationEngine", *args, **kwargs):
        if not self.running:
            raise EngineNotRunning(func.__name__)
        return func(self, *args, **kwargs)

    return wrapper


class ReconciliationEngine:
    """
    Composes the dispatcher, reconciler and detector for single requests.

    The engine owns no background work: every operation runs synchronously
    on the caller's thread and is safe to re-run.
    """

    def __init__(
        self,
        db: SQLAlchemy,
        clock: Callable[[], datetime] = datetime.now,
        library: LibraryAPI | None = None,
        metadata: TMDBApi | None = None,
        clients: Callable[[AcquisitionInstance], ArrAPI] | None = None,
        settings: AppModel | None = None,
    ):
        settings = settings or settings_manager.settings

        self.db = db
        self.clock = clock
        self.library = library
        self.metadata = metadata
        self.clients = clients or ArrClients(settings.acquisition)
        self.running = False

        self.dispatcher = AcquisitionDispatcher(
            self.get_instances,
            self.clients,
            search_after_add=settings.acquisition.search_after_add,
        )
        self.reconciler = AvailabilityReconciler(db, library, metadata, clock)
        self.detector = FulfillmentDetector(
            db, self.get_instances, self.clients, library, clock
        )
        self.calendar = UpcomingCalendar(
            self.get_instances, self.clients, settings.calendar, clock
        )

    def start(self):
        """
        Validate the storage handle and accept calls.

        Raises:
            StorageUnavailable: If the database cannot be reached.
        """

        if self.running:
            return

        if not validate_database(self.db):
            raise StorageUnavailable()

        if not self.library:
            logger.warning("No library index configured, requests can not be fulfilled")
        elif not self.library.validate():
            logger.warning("Library index is not reachable, fulfillment checks will be deferred")

        self.running = True
        logger.log("ENGINE", "Reconciliation engine started")

    def stop(self):
        if not self.running:
            return

        close = getattr(self.clients, "close", None)
        if callable(close):
            close()

        self.running = False
        logger.log("ENGINE", "Reconciliation engine stopped")

    def get_instances(self, service_type: ServiceType) -> list[AcquisitionInstance]:
        with db_session(self.db) as session:
            return get_instances_by_type(session, service_type)

    # Entry points

    @requires_running
    def process_approved_request(self, request_id: int) -> None:
        """
        Submit an approved request to its acquisition backend.

        The request's status is left as is; completion is picked up later by
        `check_request_status`.

        Raises:
            RequestNotFound: If no request has `request_id`.
            FulfillmentError: Any dispatch error, see `AcquisitionDispatcher.dispatch`.
        """

        request = self._get_request(request_id)
        result = self.dispatcher.dispatch(request)

        if result.search_error:
            logger.log(
                "SEARCH",
                f"{request.log_string} was added but its search failed: {result.search_error}",
            )

    @requires_running
    def check_request_status(self, request_id: int) -> bool:
        """
        Fulfill a request whose content is downloaded and in the library.

        Series are reconciled against the library first, so their season
        statuses stay current even while the request is still in progress.

        Returns:
            bool: True if this call fulfilled the request.

        Raises:
            RequestNotFound: If no request has `request_id`.
        """

        request = self._get_request(request_id)

        if request.status != RequestStatus.Approved.value:
            logger.debug(f"Not checking {request.log_string}: status is {request.status}")
            return False

        if request.kind == MediaType.TV and request.tmdb_id:
            self._sync_title(request.tmdb_id)

        return self.detector.check_status(request)

    @requires_running
    def check_existing_availability(
        self,
        tmdb_id: int,
        kind: MediaType | str,
        seasons: Sequence[int] | None = None,
    ) -> ShowAvailability:
        """
        What of a title is already playable, before anything is requested.

        Series are synced against the library first; when that fails the
        stored rows are used. Movies are looked up directly in the library.

        Raises:
            InvalidMediaType: If `kind` is neither movie nor tv.
        """

        try:
            kind = MediaType(kind)
        except ValueError:
            raise InvalidMediaType(f"unsupported media type: {kind}") from None

        if kind == MediaType.Movie:
            return self._movie_availability(tmdb_id)

        self._sync_title(tmdb_id)
        return self.reconciler.get_availability(tmdb_id, seasons)

    # Sweeps and maintenance

    @requires_running
    def check_all_approved(self) -> list[int]:
        """Run `check_request_status` for every approved request. Returns the ids fulfilled."""

        with db_session(self.db) as session:
            requests = get_requests_by_status(session, RequestStatus.Approved)

        fulfilled: list[int] = []
        with benchmark(
            log=lambda elapsed: logger.log(
                "ENGINE",
                f"Checked {len(requests)} approved request(s) in {elapsed}s, {len(fulfilled)} fulfilled",
            )
        ):
            for request in requests:
                try:
                    if self.check_request_status(request.id):
                        fulfilled.append(request.id)
                except FulfillmentError as e:
                    logger.error(f"Failed to check {request.log_string}: {e}")

        return fulfilled

    @requires_running
    def sync_requested_series(self) -> dict[int, str]:
        """
        Sync every series with an approved or fulfilled request.

        Returns:
            dict[int, str]: Error message per TMDB id that could not be synced.
        """

        with db_session(self.db) as session:
            tmdb_ids = get_requested_series_tmdb_ids(session)

        errors: dict[int, str] = {}
        for tmdb_id in tmdb_ids:
            error = self._sync_title(tmdb_id)
            if error:
                errors[tmdb_id] = error

        logger.log(
            "ENGINE",
            f"Synced {len(tmdb_ids) - len(errors)}/{len(tmdb_ids)} requested series",
        )

        return errors

    @requires_running
    def refresh_season(
        self, tmdb_id: int, season_number: int, total_episodes: int
    ) -> SeasonAvailability:
        row = self.reconciler.refresh_season(tmdb_id, season_number, total_episodes)
        self._refresh_season_statuses(tmdb_id)
        return row

    @requires_running
    def get_upcoming(self) -> CalendarResult:
        return self.calendar.get_upcoming()

    # Helpers

    def _get_request(self, request_id: int) -> MediaRequest:
        with db_session(self.db) as session:
            request = get_request_by_id(session, request_id)

        if not request:
            raise RequestNotFound(f"request {request_id}")

        return request

    def _sync_title(self, tmdb_id: int) -> str | None:
        """Sync a series and refresh its requests' season statuses. Returns the error, if any."""

        try:
            self.reconciler.sync_availability(tmdb_id)
        except FulfillmentError as e:
            logger.log("AVAILABILITY", f"Sync of tmdb {tmdb_id} deferred: {e}")
            return str(e)

        self._refresh_season_statuses(tmdb_id)
        return None

    def _refresh_season_statuses(self, tmdb_id: int) -> None:
        """Rewrite the season status map of approved requests of a series. Never touches `status`."""

        with db_session(self.db) as session:
            requests = get_series_requests_for_title(session, tmdb_id)

        for request in requests:
            try:
                view = self.reconciler.get_availability(
                    tmdb_id, request.requested_seasons() or None
                )
                statuses = build_season_statuses(request.status, view.seasons)
                if statuses == request.get_season_statuses():
                    continue

                with db_session(self.db) as session:
                    update_season_statuses(session, request.id, statuses, self.clock())
                logger.log(
                    "AVAILABILITY",
                    f"Updated season statuses of {request.log_string}: {view.overall_status.value}",
                )
            except Exception as e:
                logger.warning(
                    f"Failed to update season statuses of {request.log_string}: {e}"
                )

    def _movie_availability(self, tmdb_id: int) -> ShowAvailability:
        if not self.library:
            return ShowAvailability.not_available(tmdb_id)

        try:
            movie = self.library.get_movie_by_tmdb_id(tmdb_id)
        except LibraryAPIError as e:
            logger.log("LIBRARY", f"Could not look up movie tmdb {tmdb_id}: {e}")
            return ShowAvailability.not_available(tmdb_id)

        if not movie:
            return ShowAvailability.not_available(tmdb_id)

        return ShowAvailability(
            tmdb_id=tmdb_id,
            title=movie.name or None,
            overall_status=AvailabilityStatus.Complete,
        )


def build_engine(database_url: str | None = None) -> ReconciliationEngine:
    """Assemble an engine from the registered API clients and the settings."""

    settings = settings_manager.settings

    return ReconciliationEngine(
        create_db(database_url or settings.database.host),
        library=di[LibraryAPI] if LibraryAPI in di else None,
        metadata=di[TMDBApi] if TMDBApi in di else None,
        clients=di[ArrClients] if ArrClients in di else None,
        settings=settings,
    )
