"""Upcoming releases across every configured Radarr and Sonarr instance."""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from pydantic import BaseModel

from fulfillment.apis.arr_api import WantedPage, parse_arr_datetime
from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.state import ServiceType
from fulfillment.services.dispatcher import ClientFactory, InstanceSource
from fulfillment.settings.manager import settings_manager
from fulfillment.settings.models import CalendarModel


class CalendarItem(BaseModel):
    title: str
    source: ServiceType
    release_date: datetime
    tmdb_id: int | None = None
    season_number: int | None = None
    episode_number: int | None = None


@dataclass
class CalendarResult:
    """Items gathered from every instance that answered, plus one error per instance that did not."""

    items: list[CalendarItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def release_datetime(value: str | None) -> datetime | None:
    """Arr timestamps are UTC; date-only values are read as midnight UTC."""

    parsed = parse_arr_datetime(value)
    if parsed and parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def radarr_calendar_item(record: dict[str, Any]) -> CalendarItem | None:
    if record.get("hasFile"):
        return None

    release_date = release_datetime(record.get("digitalRelease"))
    if not release_date:
        return None

    return CalendarItem(
        title=record.get("title") or "Unknown Movie",
        source=ServiceType.Radarr,
        release_date=release_date,
        tmdb_id=record.get("tmdbId"),
    )


def sonarr_calendar_item(record: dict[str, Any]) -> CalendarItem | None:
    if record.get("hasFile"):
        return None

    release_date = release_datetime(record.get("airDateUtc"))
    if not release_date:
        return None

    series = record.get("series") or {}
    season_number = record.get("seasonNumber") or 0
    episode_number = record.get("episodeNumber") or 0

    return CalendarItem(
        title=(
            f"{series.get('title') or 'Unknown Series'} "
            f"S{season_number:02d}E{episode_number:02d} - {record.get('title') or 'TBA'}"
        ),
        source=ServiceType.Sonarr,
        release_date=release_date,
        tmdb_id=series.get("tmdbId"),
        season_number=season_number,
        episode_number=episode_number,
    )


class UpcomingCalendar:
    """Fans out one worker per instance and merges whatever comes back."""

    def __init__(
        self,
        instances: InstanceSource,
        clients: ClientFactory,
        settings: CalendarModel | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.instances = instances
        self.clients = clients
        self.settings = settings or settings_manager.settings.calendar
        self.clock = clock

    def get_upcoming(self) -> CalendarResult:
        """
        Missing, not yet released items within the look-ahead window.

        A failing instance never discards the results of the others; its
        error is reported in `CalendarResult.errors`.
        """

        instances = [
            *self.instances(ServiceType.Radarr),
            *self.instances(ServiceType.Sonarr),
        ]
        result = CalendarResult()

        if not instances:
            logger.log("CALENDAR", "No acquisition instances configured")
            return result

        now = self.clock()
        if now.tzinfo is None:
            now = now.astimezone()
        now = now.astimezone(timezone.utc)
        until = now + timedelta(days=self.settings.days_ahead)

        lock = threading.Lock()

        def collect(instance: AcquisitionInstance) -> None:
            items = self._instance_items(instance, now, until)
            with lock:
                result.items.extend(items)

        with ThreadPoolExecutor(
            thread_name_prefix="CalendarInstance_",
            max_workers=max(1, min(len(instances), self.settings.max_workers)),
        ) as executor:
            futures = {executor.submit(collect, instance): instance for instance in instances}

            for future in as_completed(futures):
                instance = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.error(f"Calendar query failed for {instance.type} instance {instance.name}: {e}")
                    with lock:
                        result.errors.append(f"instance {instance.name}: {e}")

        result.items.sort(key=lambda item: (item.release_date, item.title))

        logger.log(
            "CALENDAR",
            f"Found {len(result.items)} upcoming item(s) across {len(instances)} instance(s)"
            + (f", {len(result.errors)} failed" if result.errors else ""),
        )

        return result

    def _instance_items(
        self, instance: AcquisitionInstance, now: datetime, until: datetime
    ) -> list[CalendarItem]:
        client = self.clients(instance)
        is_radarr = instance.type == ServiceType.Radarr.value
        fetch_page = client.get_missing_movies if is_radarr else client.get_missing_episodes
        to_item = radarr_calendar_item if is_radarr else sonarr_calendar_item

        items: list[CalendarItem] = []
        page_number = 1

        while True:
            page: WantedPage = fetch_page(page_number, self.settings.page_size)
            for record in page.records:
                item = to_item(record)
                if item and now <= item.release_date <= until:
                    items.append(item)

            if page.is_last:
                break
            page_number += 1

        logger.debug(f"{instance.name}: {len(items)} upcoming item(s) in {page_number} page(s)")

        return items

