from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

# Settings and logging are configured at import, keep them away from the real data dir
os.environ.setdefault("FULFILLMENT_DATA_DIR", tempfile.mkdtemp(prefix="fulfillment-tests-"))
os.environ.setdefault("FULFILLMENT_LOGGING_ENABLED", "false")

import httpx
import pytest
from sqla_wrapper import SQLAlchemy
from sqlalchemy.pool import StaticPool

from fulfillment.apis.library_api import LibraryAPI, LibraryItem
from fulfillment.apis.radarr_api import RadarrAPI
from fulfillment.apis.sonarr_api import SonarrAPI
from fulfillment.apis.tmdb_api import TMDBApi
from fulfillment.db.base_model import Base, get_base_metadata
from fulfillment.db.db import create_db
from fulfillment.media import AcquisitionInstance, MediaRequest, ServiceType
from fulfillment.utils.logging import setup_logger

# Component levels (ENGINE, ARR, ...) must exist before any module logs on them
setup_logger("DEBUG")

NOW = datetime(2026, 3, 1, 12, 0, 0)


class FakeClock:
    """A clock you can control; `advance` moves it forward."""

    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db() -> Iterator[SQLAlchemy]:
    """
    In-memory SQLite storage handle, one per test.
    StaticPool keeps the single connection alive so every session sees the same database.
    """

    handle = create_db(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    get_base_metadata()
    Base.metadata.create_all(handle.engine)

    yield handle

    handle.engine.dispose()


@pytest.fixture()
def session(db: SQLAlchemy):
    with db.Session() as s:
        yield s


@pytest.fixture()
def make_request(db: SQLAlchemy):
    """Persist a MediaRequest and return it detached."""

    def _make(**overrides: Any) -> MediaRequest:
        seasons = overrides.pop("seasons", None)
        values: dict[str, Any] = {
            "user_id": "user-1",
            "media_type": "movie",
            "tmdb_id": 603,
            "title": "The Matrix",
            "status": "approved",
            "created_at": NOW,
            "updated_at": NOW,
            **overrides,
        }
        if seasons is not None:
            values["seasons"] = json.dumps(seasons)

        with db.Session() as s:
            request = MediaRequest(**values)
            s.add(request)
            s.commit()
            s.refresh(request)
            s.expunge(request)

        return request

    return _make


@pytest.fixture()
def make_instance(db: SQLAlchemy):
    """Persist an AcquisitionInstance and return it detached."""

    def _make(service_type: ServiceType = ServiceType.Radarr, **overrides: Any) -> AcquisitionInstance:
        values: dict[str, Any] = {
            "type": service_type.value,
            "name": f"{service_type.value}-main",
            "base_url": f"http://{service_type.value}.local:7878",
            "api_key": "secret",
            "quality_profile": "1",
            "root_folder_path": f"/data/{service_type.value}",
            "minimum_availability": "released" if service_type == ServiceType.Radarr else None,
            "is_4k": False,
            "created_at": NOW,
            **overrides,
        }

        with db.Session() as s:
            instance = AcquisitionInstance(**values)
            s.add(instance)
            s.commit()
            s.refresh(instance)
            s.expunge(instance)

        return instance

    return _make


def instance(id: int = 1, service_type: ServiceType = ServiceType.Radarr, **overrides: Any) -> AcquisitionInstance:
    """Unsaved instance for tests that never touch the database."""

    values: dict[str, Any] = {
        "id": id,
        "type": service_type.value,
        "name": f"{service_type.value}-{id}",
        "base_url": f"http://{service_type.value}-{id}.local",
        "api_key": "secret",
        "quality_profile": "1",
        "root_folder_path": f"/data/{service_type.value}",
        "minimum_availability": None,
        "is_4k": False,
        **overrides,
    }
    return AcquisitionInstance(**values)


def episodes(season_number: int, count: int, start: int = 1) -> list[LibraryItem]:
    return [
        LibraryItem(
            id=f"ep-{season_number}-{number}",
            name=f"Episode {number}",
            type="Episode",
            parent_index_number=season_number,
            index_number=number,
        )
        for number in range(start, start + count)
    ]


@pytest.fixture()
def library() -> MagicMock:
    """Library index with nothing in it."""

    fake = MagicMock(spec=LibraryAPI)
    fake.validate.return_value = True
    fake.get_movie_by_tmdb_id.return_value = None
    fake.get_series_by_tmdb_id.return_value = None
    fake.get_episodes_by_show.return_value = []
    fake.get_episodes_by_show_and_season.return_value = []
    return fake


@pytest.fixture()
def metadata() -> MagicMock:
    return MagicMock(spec=TMDBApi)


@pytest.fixture()
def radarr() -> MagicMock:
    fake = MagicMock(spec=RadarrAPI)
    fake.name = "radarr-main"
    fake.get_movie_by_tmdb_id.return_value = None
    return fake


@pytest.fixture()
def sonarr() -> MagicMock:
    fake = MagicMock(spec=SonarrAPI)
    fake.name = "sonarr-main"
    fake.get_series_by_tmdb_id.return_value = None
    return fake


@pytest.fixture()
def clients(radarr: MagicMock, sonarr: MagicMock):
    """Client factory handing out the fake Radarr/Sonarr by instance type."""

    def _clients(instance: AcquisitionInstance):
        return radarr if instance.type == ServiceType.Radarr.value else sonarr

    return _clients


@pytest.fixture
def http_mock(monkeypatch):
    """
    httpx-based mock intercepting SmartSession's internal httpx.Client.

    Routes match on method and URL without the query string; an optional
    `params` dict narrows a route to requests carrying those query values.
    Every request is recorded in `calls`.
    """

    import fulfillment.utils.request as request_mod

    routes: list[dict[str, Any]] = []
    calls: list[SimpleNamespace] = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        params = dict(request.url.params)
        body = request.content
        calls.append(
            SimpleNamespace(
                method=request.method.upper(),
                url=url,
                params=params,
                json=json.loads(body) if body else None,
                headers=request.headers,
            )
        )

        for route in routes:
            if route["method"] != request.method.upper() or route["url"] != url:
                continue
            if any(str(params.get(k)) != str(v) for k, v in route["params"].items()):
                continue

            cfg = route["queue"].pop(0) if route["queue"] else route["sticky"]
            if cfg is None:
                break
            if isinstance(cfg, Exception):
                raise cfg

            status_code = cfg.get("status_code", 200)
            headers = dict(cfg.get("headers", {}))
            if "json" in cfg:
                headers.setdefault("Content-Type", "application/json")
                return httpx.Response(status_code, headers=headers, json=cfg["json"])
            return httpx.Response(status_code, headers=headers, content=cfg.get("content", b""))

        return httpx.Response(404, json={"detail": "Not mocked"})

    transport = httpx.MockTransport(handler)

    RealClient = httpx.Client

    class _FakeClient:
        def __init__(self, *args, **kwargs):
            self._client = RealClient(transport=transport)
            # SmartSession reads the default timeout off the client
            self.timeout = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0)

        def request(self, *args, **kwargs):
            return self._client.request(*args, **kwargs)

        def close(self):
            self._client.close()

    monkeypatch.setattr(request_mod.httpx, "Client", _FakeClient, raising=True)

    class _Mock:
        def __init__(self):
            self.calls = calls

        def add(self, method: str, url: str, cfg=None, params: dict | None = None, **kwargs):
            # Support both list-of-configs and keyword style like json=..., status_code=...
            if cfg is None:
                cfg = kwargs
            routes.append(
                {
                    "method": method.upper(),
                    "url": url,
                    "params": params or {},
                    "queue": list(cfg) if isinstance(cfg, list) else [],
                    "sticky": None if isinstance(cfg, list) else cfg,
                }
            )

        def get(self, url: str, cfg=None, **kwargs):
            self.add("GET", url, cfg, **kwargs)

        def post(self, url: str, cfg=None, **kwargs):
            self.add("POST", url, cfg, **kwargs)

        def requests(self, method: str, url: str) -> list[SimpleNamespace]:
            return [c for c in calls if c.method == method.upper() and c.url == url]

    return _Mock()
