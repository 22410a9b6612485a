"""Submission of approved requests to Radarr/Sonarr."""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import cast

from loguru import logger
from pydantic import ValidationError

from fulfillment.apis.arr_api import AddedItem, ArrAPI, ArrConnectionError, ArrRejectedError
from fulfillment.apis.radarr_api import RadarrAPI
from fulfillment.apis.sonarr_api import SonarrAPI
from fulfillment.errors import (
    AcquisitionConnectionError,
    AcquisitionRejected,
    InvalidMediaType,
    InvalidQualityProfile,
    MissingExternalID,
    RequestNotApproved,
)
from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.request import MediaRequest
from fulfillment.media.state import MediaType, RequestStatus, ServiceType
from fulfillment.services.instance_selector import select_instance

InstanceSource = Callable[[ServiceType], list[AcquisitionInstance]]
ClientFactory = Callable[[AcquisitionInstance], ArrAPI]


@dataclass
class DispatchResult:
    """Outcome of a dispatch. `search_error` reports the best-effort search, never raised."""

    item: AddedItem
    instance: AcquisitionInstance
    seasons: list[int]
    search_triggered: bool = False
    search_error: str | None = None


@contextmanager
def translate_arr_errors(service_type: ServiceType) -> Iterator[None]:
    """Map client errors to the engine's error taxonomy."""

    try:
        yield
    except ArrConnectionError as e:
        raise AcquisitionConnectionError(service_type.value, str(e)) from e
    except ArrRejectedError as e:
        raise AcquisitionRejected(service_type.value, str(e)) from e
    except ValidationError as e:
        raise AcquisitionRejected(service_type.value, f"unexpected response: {e}") from e


def parse_quality_profile(instance: AcquisitionInstance) -> int:
    try:
        return int(str(instance.quality_profile).strip())
    except (TypeError, ValueError):
        raise InvalidQualityProfile(
            f"invalid quality profile '{instance.quality_profile}' for {instance.type} instance '{instance.name}'"
        ) from None


class AcquisitionDispatcher:
    """
    Submits approved requests to the acquisition backends.

    Dispatch never changes the request's status and never retries: failures are
    raised to the caller as typed errors, and completion is detected later by
    the fulfillment detector.
    """

    def __init__(
        self,
        instances: InstanceSource,
        clients: ClientFactory,
        search_after_add: bool = True,
    ):
        self.instances = instances
        self.clients = clients
        self.search_after_add = search_after_add

    def dispatch(self, request: MediaRequest) -> DispatchResult:
        """
        Submit an approved request to Radarr or Sonarr.

        Raises:
            RequestNotApproved: If the request is not approved.
            MissingExternalID: If the request has no TMDB id.
            InvalidMediaType: If the media type is neither movie nor tv.
            SeasonParsingFailed: If the stored season list is malformed.
            NoInstancesConfigured: If no instance of the required kind exists.
            InvalidQualityProfile: If the selected instance's profile is not numeric.
            AcquisitionConnectionError: If the instance could not be reached.
            AcquisitionRejected: If the instance refused the submission.
        """

        if request.status != RequestStatus.Approved.value:
            raise RequestNotApproved(f"current status: {request.status}")

        if not request.tmdb_id:
            raise MissingExternalID(f"request {request.id}")

        if request.kind == MediaType.Movie:
            return self._dispatch_movie(request)
        if request.kind == MediaType.TV:
            return self._dispatch_series(request)

        raise InvalidMediaType(f"unsupported media type: {request.media_type}")

    def _dispatch_movie(self, request: MediaRequest) -> DispatchResult:
        instance = select_instance(
            self.instances(ServiceType.Radarr), request.is_4k, ServiceType.Radarr
        )
        quality_profile_id = parse_quality_profile(instance)
        client = cast(RadarrAPI, self.clients(instance))

        with translate_arr_errors(ServiceType.Radarr):
            item = client.add_movie(
                request.tmdb_id,
                quality_profile_id,
                instance.root_folder_path,
                instance.minimum_availability,
            )

        logger.log(
            "DISPATCH",
            f"{'Already in' if item.already_existed else 'Added to'} Radarr {instance.name}: "
            f"{request.log_string} as movie {item.id}",
        )

        return DispatchResult(item=item, instance=instance, seasons=[])

    def _dispatch_series(self, request: MediaRequest) -> DispatchResult:
        seasons = request.requested_seasons()
        instance = select_instance(
            self.instances(ServiceType.Sonarr), request.is_4k, ServiceType.Sonarr
        )
        quality_profile_id = parse_quality_profile(instance)
        client = cast(SonarrAPI, self.clients(instance))

        with translate_arr_errors(ServiceType.Sonarr):
            item = client.add_series(
                request.tmdb_id,
                quality_profile_id,
                instance.root_folder_path,
                seasons=seasons or None,
            )

        logger.log(
            "DISPATCH",
            f"{'Already in' if item.already_existed else 'Added to'} Sonarr {instance.name}: "
            f"{request.log_string} as series {item.id}, seasons {seasons or 'all'}",
        )

        result = DispatchResult(item=item, instance=instance, seasons=seasons)

        if self.search_after_add and not item.already_existed:
            result.search_error = self._search_series(client, item)
            result.search_triggered = result.search_error is None

        return result

    def _search_series(self, client: SonarrAPI, item: AddedItem) -> str | None:
        """Trigger a search for a newly added series. Failures are reported, never raised."""

        try:
            client.search_series(item.id)
        except Exception as e:
            logger.log(
                "SEARCH",
                f"Search for series {item.id} ({item.title}) on Sonarr {client.name} failed: {e}",
            )
            return str(e)

        logger.log("SEARCH", f"Search triggered for series {item.id} ({item.title})")
        return None

