from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import NOW
from fulfillment.db.db_functions import (
    fulfill_request,
    get_instances_by_type,
    get_request_by_id,
    get_requested_series_tmdb_ids,
    get_requests_by_status,
    get_series_requests_for_title,
    get_show_season_availability,
    update_season_statuses,
    upsert_season_availability,
)
from fulfillment.errors import SeasonParsingFailed
from fulfillment.media import MediaRequest, MediaType, RequestStatus, ServiceType

LATER = datetime(2026, 3, 2, 8, 30, 0)


def test_fulfill_request_sets_status_and_timestamps(session, make_request):
    request = make_request()

    assert fulfill_request(session, request.id, LATER) is True

    stored = get_request_by_id(session, request.id)
    assert stored.status == "fulfilled"
    assert stored.fulfilled_at == LATER
    assert stored.updated_at == LATER


@pytest.mark.parametrize("status", ["pending", "denied"])
def test_fulfill_request_only_moves_approved(session, make_request, status):
    request = make_request(status=status)

    assert fulfill_request(session, request.id, LATER) is False
    assert get_request_by_id(session, request.id).status == status


def test_fulfill_request_is_one_shot(session, make_request):
    request = make_request()
    fulfill_request(session, request.id, NOW)

    assert fulfill_request(session, request.id, LATER) is False
    assert get_request_by_id(session, request.id).fulfilled_at == NOW


def test_fulfilled_without_timestamp_is_rejected(session):
    session.add(
        MediaRequest(user_id="user-1", media_type="movie", tmdb_id=603, status="fulfilled", fulfilled_at=None)
    )

    with pytest.raises(IntegrityError):
        session.commit()


def test_requests_by_status_and_type(session, make_request):
    movie = make_request()
    series = make_request(media_type="tv", tmdb_id=95396)
    make_request(status="pending")

    assert [r.id for r in get_requests_by_status(session, RequestStatus.Approved)] == [movie.id, series.id]
    assert [r.id for r in get_requests_by_status(session, RequestStatus.Approved, MediaType.TV)] == [series.id]


def test_series_requests_for_title(session, make_request):
    first = make_request(media_type="tv", tmdb_id=95396, seasons=[1])
    make_request(media_type="tv", tmdb_id=95396, status="denied")
    make_request(media_type="movie", tmdb_id=95396)
    second = make_request(media_type="tv", tmdb_id=95396, seasons=[2], is_4k=True)

    assert [r.id for r in get_series_requests_for_title(session, 95396)] == [first.id, second.id]


def test_requested_series_ids(session, make_request):
    make_request(media_type="tv", tmdb_id=1399)
    make_request(media_type="tv", tmdb_id=95396, status="fulfilled", fulfilled_at=NOW)
    make_request(media_type="tv", tmdb_id=95396)
    make_request(media_type="tv", tmdb_id=2316, status="pending")
    make_request(media_type="tv", tmdb_id=None)

    assert get_requested_series_tmdb_ids(session) == [1399, 95396]


def test_update_season_statuses_leaves_status(session, make_request):
    request = make_request(media_type="tv", tmdb_id=95396, seasons=[1])

    update_season_statuses(session, request.id, {"season_1": {"status": "partial"}}, LATER)

    stored = get_request_by_id(session, request.id)
    assert stored.status == "approved"
    assert stored.get_season_statuses() == {"season_1": {"status": "partial"}}
    assert stored.updated_at == LATER


def test_instances_in_configuration_order(session, make_instance):
    main = make_instance(ServiceType.Radarr, name="main")
    uhd = make_instance(ServiceType.Radarr, name="4k", is_4k=True)
    make_instance(ServiceType.Sonarr)

    assert [i.id for i in get_instances_by_type(session, ServiceType.Radarr)] == [main.id, uhd.id]


def test_upsert_derives_is_complete(session):
    row = upsert_season_availability(session, 95396, 1, 10, 10, NOW)
    assert row.is_complete

    row = upsert_season_availability(session, 95396, 2, 10, 4, NOW)
    assert not row.is_complete

    row = upsert_season_availability(session, 95396, 3, 0, 0, NOW)
    assert not row.is_complete


def test_upsert_unchanged_row_is_not_rewritten(session):
    upsert_season_availability(session, 95396, 1, 10, 4, NOW)

    row = upsert_season_availability(session, 95396, 1, 10, 4, LATER)

    assert row.last_updated == NOW
    assert len(get_show_season_availability(session, 95396)) == 1


def test_upsert_changed_row(session):
    upsert_season_availability(session, 95396, 1, 10, 4, NOW)

    row = upsert_season_availability(session, 95396, 1, 10, 10, LATER)

    assert row.is_complete
    assert row.last_updated == LATER


def test_show_season_availability_filter(session):
    for season_number in (3, 1, 2):
        upsert_season_availability(session, 95396, season_number, 10, 10, NOW)

    assert [r.season_number for r in get_show_season_availability(session, 95396)] == [1, 2, 3]
    assert [r.season_number for r in get_show_season_availability(session, 95396, [2, 3])] == [2, 3]


def test_requested_seasons_parsing():
    assert MediaRequest(id=1, seasons="[1, 2]").requested_seasons() == [1, 2]
    assert MediaRequest(id=2).requested_seasons() == []

    with pytest.raises(SeasonParsingFailed):
        MediaRequest(id=3, seasons='["1"]').requested_seasons()


def test_seasons_are_immutable_once_set():
    request = MediaRequest(id=1, seasons="[1]")

    with pytest.raises(ValueError):
        request.seasons = "[1, 2]"
