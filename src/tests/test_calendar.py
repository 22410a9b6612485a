from datetime import datetime, timezone

import pytest

from conftest import FakeClock, instance
from fulfillment.apis.arr_api import ArrConnectionError, WantedPage
from fulfillment.media import ServiceType
from fulfillment.services.calendar import (
    UpcomingCalendar,
    radarr_calendar_item,
    release_datetime,
    sonarr_calendar_item,
)
from fulfillment.settings.models import CalendarModel

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def page(records, page_number=1, page_size=100, total=None):
    return WantedPage(
        page=page_number,
        page_size=page_size,
        total_records=len(records) if total is None else total,
        records=records,
    )


def movie(title, digital_release, **extra):
    return {"title": title, "tmdbId": 1, "digitalRelease": digital_release, "hasFile": False, **extra}


def episode(series, season, number, air_date, title="Episode", **extra):
    return {
        "title": title,
        "seasonNumber": season,
        "episodeNumber": number,
        "airDateUtc": air_date,
        "hasFile": False,
        "series": {"title": series, "tmdbId": 95396},
        **extra,
    }


@pytest.fixture
def configured():
    return {
        ServiceType.Radarr: [instance(1, ServiceType.Radarr)],
        ServiceType.Sonarr: [instance(2, ServiceType.Sonarr)],
    }


@pytest.fixture
def calendar(configured, clients):
    return UpcomingCalendar(
        lambda service_type: configured[service_type],
        clients,
        CalendarModel(days_ahead=30, page_size=100, max_workers=4),
        FakeClock(NOW),
    )


def test_items_from_all_instances_are_merged_and_sorted(calendar, radarr, sonarr):
    radarr.get_missing_movies.return_value = page([
        movie("Dune: Part Three", "2026-03-20T00:00:00Z"),
        movie("Alien: Earth", "2026-03-05T00:00:00Z"),
    ])
    sonarr.get_missing_episodes.return_value = page([
        episode("Severance", 3, 1, "2026-03-10T02:00:00Z", title="Hello, Ms. Cobel"),
    ])

    result = calendar.get_upcoming()

    assert result.errors == []
    assert [item.title for item in result.items] == [
        "Alien: Earth",
        "Severance S03E01 - Hello, Ms. Cobel",
        "Dune: Part Three",
    ]
    assert result.items[1].source == ServiceType.Sonarr
    assert result.items[1].tmdb_id == 95396


def test_only_items_inside_the_window_are_kept(calendar, radarr, sonarr):
    radarr.get_missing_movies.return_value = page([
        movie("Past", "2026-02-20T00:00:00Z"),
        movie("Soon", "2026-03-02T00:00:00Z"),
        movie("Too far", "2026-05-01T00:00:00Z"),
        movie("No date", None),
        movie("Downloaded", "2026-03-03T00:00:00Z", hasFile=True),
    ])
    sonarr.get_missing_episodes.return_value = page([])

    result = calendar.get_upcoming()

    assert [item.title for item in result.items] == ["Soon"]


def test_failing_instance_keeps_the_others(calendar, radarr, sonarr):
    radarr.get_missing_movies.side_effect = ArrConnectionError("radarr is down")
    sonarr.get_missing_episodes.return_value = page([
        episode("Severance", 3, 2, "2026-03-17T02:00:00Z"),
    ])

    result = calendar.get_upcoming()

    assert len(result.items) == 1
    assert result.errors == ["instance radarr-1: radarr is down"]


def test_unreadable_record_fails_only_its_instance(calendar, radarr, sonarr):
    radarr.get_missing_movies.return_value = page([movie("Alien: Earth", "2026-03-05T00:00:00Z")])
    sonarr.get_missing_episodes.return_value = page([
        episode("Severance", "3", 2, "2026-03-17T02:00:00Z"),
    ])

    result = calendar.get_upcoming()

    assert [item.title for item in result.items] == ["Alien: Earth"]
    assert len(result.errors) == 1
    assert result.errors[0].startswith("instance sonarr-2:")


def test_pages_are_followed_until_the_last(calendar, radarr, sonarr):
    radarr.get_missing_movies.side_effect = [
        page([movie("First", "2026-03-02T00:00:00Z")], page_number=1, page_size=1, total=2),
        page([movie("Second", "2026-03-03T00:00:00Z")], page_number=2, page_size=1, total=2),
    ]
    sonarr.get_missing_episodes.return_value = page([])

    result = calendar.get_upcoming()

    assert [item.title for item in result.items] == ["First", "Second"]
    assert [call.args for call in radarr.get_missing_movies.call_args_list] == [(1, 100), (2, 100)]


def test_no_instances_is_empty(clients):
    calendar = UpcomingCalendar(lambda service_type: [], clients, CalendarModel(), FakeClock(NOW))

    result = calendar.get_upcoming()

    assert result.items == []
    assert result.errors == []


def test_sonarr_item_without_series_info():
    item = sonarr_calendar_item({"seasonNumber": 1, "episodeNumber": 2, "airDateUtc": "2026-03-02T00:00:00Z"})

    assert item.title == "Unknown Series S01E02 - TBA"


def test_radarr_item_only_uses_digital_release():
    assert radarr_calendar_item({"title": "Sinners", "inCinemas": "2026-03-02T00:00:00Z"}) is None


def test_release_datetime_assumes_utc():
    assert release_datetime("2026-03-02") == datetime(2026, 3, 2, tzinfo=timezone.utc)
