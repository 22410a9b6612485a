from fulfillment.services.availability import (
    AvailabilityReconciler,
    build_season_statuses,
    group_episodes_by_season,
    overall_status,
)
from fulfillment.services.calendar import CalendarItem, CalendarResult, UpcomingCalendar
from fulfillment.services.dispatcher import AcquisitionDispatcher, DispatchResult
from fulfillment.services.fulfillment import FulfillmentDetector
from fulfillment.services.instance_selector import candidate_instances, select_instance

__all__ = [
    "AcquisitionDispatcher",
    "AvailabilityReconciler",
    "CalendarItem",
    "CalendarResult",
    "DispatchResult",
    "FulfillmentDetector",
    "UpcomingCalendar",
    "build_season_statuses",
    "candidate_instances",
    "group_episodes_by_season",
    "overall_status",
    "select_instance",
]
