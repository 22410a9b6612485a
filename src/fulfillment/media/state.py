"""
Request lifecycle states and the enumerations shared by the engine.

Request lifecycle:

    pending -> approved -> fulfilled
    pending -> denied

    Approval and denial are human actions. Dispatch and fulfillment checks are
    only ever invoked on approved requests; denied and fulfilled are terminal
    for the engine. There is no intermediate "acquiring" state: a dispatched
    request stays approved until the fulfillment detector confirms the content
    is both downloaded and visible in the library.
"""
from enum import Enum


class RequestStatus(str, Enum):
    Pending = "pending"
    Approved = "approved"
    Denied = "denied"
    Fulfilled = "fulfilled"


class MediaType(str, Enum):
    Movie = "movie"
    TV = "tv"


class ServiceType(str, Enum):
    """Acquisition backend kind, as stored in `arr_services.type`."""

    Radarr = "radarr"
    Sonarr = "sonarr"

    @classmethod
    def for_media_type(cls, media_type: MediaType) -> "ServiceType":
        return cls.Radarr if media_type == MediaType.Movie else cls.Sonarr


class AvailabilityStatus(str, Enum):
    NotAvailable = "not_available"
    Partial = "partial"
    Complete = "complete"
