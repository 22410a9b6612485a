import pytest

from fulfillment.apis.tmdb_api import TMDBApi, TMDBApiError

TMDB = "https://api.themoviedb.org/3"


def test_season_episode_count(http_mock):
    http_mock.get(
        f"{TMDB}/tv/95396/season/1",
        json={
            "season_number": 1,
            "name": "Season 1",
            "episodes": [{"episode_number": n} for n in range(1, 10)],
        },
    )
    tmdb = TMDBApi("tmdb-key")

    assert tmdb.get_season_episode_count(95396, 1) == 9
    (call,) = http_mock.requests("GET", f"{TMDB}/tv/95396/season/1")
    assert call.params == {"api_key": "tmdb-key"}


def test_missing_season_raises(http_mock):
    http_mock.get(f"{TMDB}/tv/95396/season/9", status_code=404, json={"status_code": 34})
    tmdb = TMDBApi("tmdb-key")

    with pytest.raises(TMDBApiError):
        tmdb.get_season_details(95396, 9)


@pytest.mark.parametrize(
    "cfg",
    [
        {"content": b"<html>proxy error</html>", "headers": {"Content-Type": "text/html"}},
        {"json": {"season_number": 1, "episodes": [{"name": "no number"}]}},
    ],
)
def test_unreadable_season_raises(http_mock, cfg):
    http_mock.get(f"{TMDB}/tv/95396/season/1", **cfg)
    tmdb = TMDBApi("tmdb-key")

    with pytest.raises(TMDBApiError, match="invalid body"):
        tmdb.get_season_episode_count(95396, 1)
