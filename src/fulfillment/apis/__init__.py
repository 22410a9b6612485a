import threading

from kink import di

from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.state import ServiceType
from fulfillment.settings.manager import settings_manager
from fulfillment.settings.models import AcquisitionModel

from .arr_api import ArrAPI, ArrAPIError, ArrConnectionError, ArrRejectedError
from .library_api import LibraryAPI, LibraryAPIError
from .radarr_api import RadarrAPI
from .sonarr_api import SonarrAPI
from .tmdb_api import TMDBApi, TMDBApiError


class ArrClients:
    """
    Radarr/Sonarr clients keyed by instance.

    Instances are configuration rows that can change between calls, so a client
    is rebuilt whenever the instance's endpoint or credential changes.
    """

    def __init__(self, settings: AcquisitionModel | None = None):
        self.settings = settings or settings_manager.settings.acquisition
        self._clients: dict[int, tuple[tuple[str, str], ArrAPI]] = {}
        self._lock = threading.Lock()

    def get(self, instance: AcquisitionInstance) -> ArrAPI:
        key = (instance.base_url, instance.api_key)

        with self._lock:
            cached = self._clients.get(instance.id)
            if cached and cached[0] == key:
                return cached[1]

            client_class = (
                RadarrAPI if instance.type == ServiceType.Radarr.value else SonarrAPI
            )
            client = client_class(
                instance.base_url,
                instance.api_key,
                name=instance.name,
                timeout=self.settings.request_timeout,
                retries=self.settings.retries,
                backoff_factor=self.settings.backoff_factor,
            )
            if cached:
                cached[1].close()
            self._clients[instance.id] = (key, client)

            return client

    def __call__(self, instance: AcquisitionInstance) -> ArrAPI:
        return self.get(instance)

    def close(self):
        with self._lock:
            for _, client in self._clients.values():
                client.close()
            self._clients.clear()


def bootstrap_apis():
    __setup_library()
    __setup_tmdb()
    di[ArrClients] = ArrClients()


def __setup_library():
    library = settings_manager.settings.library
    if not library.enabled:
        return

    di[LibraryAPI] = LibraryAPI(
        library.url,
        library.api_key,
        provider=library.provider,
        timeout=library.timeout,
    )


def __setup_tmdb():
    tmdb = settings_manager.settings.tmdb
    if not tmdb.enabled or not tmdb.api_key:
        return

    di[TMDBApi] = TMDBApi(tmdb.api_key, tmdb.url)


__all__ = [
    "ArrAPI",
    "ArrAPIError",
    "ArrClients",
    "ArrConnectionError",
    "ArrRejectedError",
    "LibraryAPI",
    "LibraryAPIError",
    "RadarrAPI",
    "SonarrAPI",
    "TMDBApi",
    "TMDBApiError",
    "bootstrap_apis",
]
