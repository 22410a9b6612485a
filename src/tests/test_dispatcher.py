import json

import pytest

from conftest import instance
from fulfillment.apis.arr_api import AddedItem, ArrConnectionError, ArrRejectedError
from fulfillment.errors import (
    AcquisitionConnectionError,
    AcquisitionRejected,
    InvalidMediaType,
    InvalidQualityProfile,
    MissingExternalID,
    NoInstancesConfigured,
    RequestNotApproved,
    SeasonParsingFailed,
)
from fulfillment.media import MediaRequest, ServiceType
from fulfillment.services.dispatcher import AcquisitionDispatcher, parse_quality_profile


def media_request(**overrides) -> MediaRequest:
    seasons = overrides.pop("seasons", None)
    values = {
        "id": 1,
        "user_id": "user-1",
        "media_type": "movie",
        "tmdb_id": 603,
        "title": "The Matrix",
        "status": "approved",
        "is_4k": False,
        **overrides,
    }
    if seasons is not None:
        values["seasons"] = seasons if isinstance(seasons, str) else json.dumps(seasons)
    return MediaRequest(**values)


def series_request(**overrides) -> MediaRequest:
    return media_request(media_type="tv", tmdb_id=95396, title="Severance", **overrides)


@pytest.fixture
def configured():
    return {
        ServiceType.Radarr: [instance(1, ServiceType.Radarr, minimum_availability="released")],
        ServiceType.Sonarr: [instance(2, ServiceType.Sonarr)],
    }


@pytest.fixture
def dispatcher(configured, clients):
    return AcquisitionDispatcher(lambda service_type: configured[service_type], clients)


def test_movie_is_added_with_instance_settings(dispatcher, radarr):
    radarr.add_movie.return_value = AddedItem(id=11, title="The Matrix", tmdb_id=603)

    result = dispatcher.dispatch(media_request())

    radarr.add_movie.assert_called_once_with(603, 1, "/data/radarr", "released")
    assert result.item.id == 11
    assert result.instance.id == 1
    assert result.seasons == []


def test_movie_already_in_radarr_is_success(dispatcher, radarr):
    radarr.add_movie.return_value = AddedItem(id=7, title="The Matrix", already_existed=True)

    result = dispatcher.dispatch(media_request())

    assert result.item.already_existed


def test_dispatch_never_changes_status(dispatcher, radarr):
    radarr.add_movie.return_value = AddedItem(id=11)
    request = media_request()

    dispatcher.dispatch(request)

    assert request.status == "approved"
    assert request.fulfilled_at is None


def test_series_with_seasons_monitors_subset_and_searches(dispatcher, sonarr):
    sonarr.add_series.return_value = AddedItem(id=21, title="Severance")

    result = dispatcher.dispatch(series_request(seasons=[1, 2]))

    sonarr.add_series.assert_called_once_with(95396, 1, "/data/sonarr", seasons=[1, 2])
    sonarr.search_series.assert_called_once_with(21)
    assert result.seasons == [1, 2]
    assert result.search_triggered
    assert result.search_error is None


def test_series_without_seasons_monitors_all(dispatcher, sonarr):
    sonarr.add_series.return_value = AddedItem(id=21)

    dispatcher.dispatch(series_request())

    sonarr.add_series.assert_called_once_with(95396, 1, "/data/sonarr", seasons=None)


def test_existing_series_is_not_searched_again(dispatcher, sonarr):
    sonarr.add_series.return_value = AddedItem(id=4, already_existed=True)

    result = dispatcher.dispatch(series_request())

    sonarr.search_series.assert_not_called()
    assert not result.search_triggered


def test_search_failure_does_not_fail_dispatch(dispatcher, sonarr):
    sonarr.add_series.return_value = AddedItem(id=21, title="Severance")
    sonarr.search_series.side_effect = ArrConnectionError("sonarr went away")

    result = dispatcher.dispatch(series_request())

    assert result.item.id == 21
    assert not result.search_triggered
    assert "sonarr went away" in result.search_error


def test_search_can_be_disabled(configured, clients, sonarr):
    dispatcher = AcquisitionDispatcher(
        lambda service_type: configured[service_type], clients, search_after_add=False
    )
    sonarr.add_series.return_value = AddedItem(id=21)

    dispatcher.dispatch(series_request())

    sonarr.search_series.assert_not_called()


@pytest.mark.parametrize("status", ["pending", "denied", "fulfilled"])
def test_only_approved_requests_are_dispatched(dispatcher, radarr, status):
    with pytest.raises(RequestNotApproved):
        dispatcher.dispatch(media_request(status=status))

    radarr.add_movie.assert_not_called()


def test_missing_tmdb_id(dispatcher):
    with pytest.raises(MissingExternalID):
        dispatcher.dispatch(media_request(tmdb_id=None))


def test_unknown_media_type(dispatcher):
    with pytest.raises(InvalidMediaType):
        dispatcher.dispatch(media_request(media_type="music"))


def test_malformed_seasons_fail_before_contacting_sonarr(dispatcher, sonarr):
    with pytest.raises(SeasonParsingFailed):
        dispatcher.dispatch(series_request(seasons="[1, two]"))

    sonarr.add_series.assert_not_called()


def test_no_instances_configured(clients):
    dispatcher = AcquisitionDispatcher(lambda service_type: [], clients)

    with pytest.raises(NoInstancesConfigured) as ei:
        dispatcher.dispatch(series_request())

    assert ei.value.code == 10601


def test_invalid_quality_profile(clients, radarr):
    broken = instance(1, ServiceType.Radarr, quality_profile="HD-1080p")
    dispatcher = AcquisitionDispatcher(lambda service_type: [broken], clients)

    with pytest.raises(InvalidQualityProfile):
        dispatcher.dispatch(media_request())

    radarr.add_movie.assert_not_called()


def test_4k_request_uses_4k_instance(clients, radarr):
    standard = instance(1, ServiceType.Radarr, quality_profile="1")
    uhd = instance(2, ServiceType.Radarr, quality_profile="5", root_folder_path="/data/4k")
    uhd.is_4k = True
    dispatcher = AcquisitionDispatcher(lambda service_type: [standard, uhd], clients)
    radarr.add_movie.return_value = AddedItem(id=3)

    result = dispatcher.dispatch(media_request(is_4k=True))

    assert result.instance is uhd
    radarr.add_movie.assert_called_once_with(603, 5, "/data/4k", None)


def test_connection_failure_is_typed(dispatcher, radarr):
    radarr.add_movie.side_effect = ArrConnectionError("timed out")

    with pytest.raises(AcquisitionConnectionError) as ei:
        dispatcher.dispatch(media_request())

    assert ei.value.code == 10603


def test_rejection_is_typed(dispatcher, sonarr):
    sonarr.add_series.side_effect = ArrRejectedError("bad root folder", status_code=400)

    with pytest.raises(AcquisitionRejected) as ei:
        dispatcher.dispatch(series_request())

    assert ei.value.code == 10631


def test_parse_quality_profile():
    assert parse_quality_profile(instance(1, quality_profile=" 7 ")) == 7
