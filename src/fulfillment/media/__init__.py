from fulfillment.media.availability import SeasonAvailability, is_season_complete
from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.models import SeasonAvailabilityInfo, ShowAvailability
from fulfillment.media.request import MediaRequest
from fulfillment.media.state import (
    AvailabilityStatus,
    MediaType,
    RequestStatus,
    ServiceType,
)

__all__ = [
    "AcquisitionInstance",
    "AvailabilityStatus",
    "MediaRequest",
    "MediaType",
    "RequestStatus",
    "SeasonAvailability",
    "SeasonAvailabilityInfo",
    "ServiceType",
    "ShowAvailability",
    "is_season_complete",
]
