"""Shared client plumbing for the Radarr/Sonarr v3 APIs"""

from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from requests.exceptions import ConnectionError, Timeout

from fulfillment.utils.request import CircuitBreakerOpen, SmartResponse, SmartSession


class ArrAPIError(Exception):
    """Base exception for Radarr/Sonarr API related errors"""


class ArrConnectionError(ArrAPIError):
    """The instance could not be reached or timed out"""


class ArrRejectedError(ArrAPIError):
    """The instance answered with an unexpected status code"""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ArrModel(BaseModel):
    """Base for Arr payloads: camelCase on the wire, unknown fields ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class AddedItem(ArrModel):
    """Result of an add call. `already_existed` is set when the title was already present."""

    id: int
    title: str = ""
    tmdb_id: int | None = None
    monitored: bool = True
    already_existed: bool = Field(default=False, exclude=True)


class WantedPage(ArrModel):
    page: int = 1
    page_size: int = 0
    total_records: int = 0
    records: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def is_last(self) -> bool:
        return (
            not self.records
            or self.page_size <= 0
            or self.page * self.page_size >= self.total_records
        )


def parse_arr_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class ArrAPI:
    """Handles communication with one Radarr or Sonarr instance"""

    service_name = "Arr"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        name: str | None = None,
        timeout: float = 30.0,
        retries: int = 0,
        backoff_factor: float = 0.3,
    ):
        self.base_url = base_url.rstrip("/")
        self.name = name or self.base_url
        self.session = SmartSession(
            base_url=f"{self.base_url}/api/v3",
            retries=retries,
            backoff_factor=backoff_factor,
            timeout=timeout,
        )
        self.session.headers.update(
            {"X-Api-Key": api_key, "Content-Type": "application/json"}
        )

    def validate(self) -> bool:
        """Validate API connection"""

        try:
            return self._request("GET", "system/status").ok
        except ArrAPIError as e:
            logger.error(f"{self.service_name} instance {self.name} is not reachable: {e}")

        return False

    def command(self, name: str, **payload: Any) -> int | None:
        """
        Queue a backend command (e.g. `MoviesSearch`, `SeriesSearch`).

        Returns:
            int | None: The queued command id when the backend reports one.
        """

        response = self._request("POST", "command", json={"name": name, **payload})
        self._expect(response, 200, 201, action=f"command {name}")

        logger.log("ARR", f"{self.service_name} {self.name} queued {name} {payload}")

        return getattr(response.data, "id", None)

    def get_missing(self, page: int = 1, page_size: int = 100, **params: Any) -> WantedPage:
        """One page of the instance's wanted/missing list."""

        response = self._request(
            "GET",
            "wanted/missing",
            params={"page": page, "pageSize": page_size, **params},
        )
        self._expect(response, 200, action="wanted/missing")

        return WantedPage.model_validate(response.json())

    def close(self):
        self.session.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> SmartResponse:
        try:
            return self.session.request(method, path, **kwargs)
        except (ConnectionError, Timeout, CircuitBreakerOpen) as e:
            raise ArrConnectionError(
                f"failed to contact {self.service_name} instance {self.name}: {e}"
            ) from e

    def _expect(self, response: SmartResponse, *status_codes: int, action: str) -> None:
        if response.status_code in status_codes:
            return

        raise ArrRejectedError(
            f"{self.service_name} instance {self.name} returned status {response.status_code} for {action}",
            status_code=response.status_code,
            body=response.text[:500],
        )

    def _is_already_added(self, response: SmartResponse) -> bool:
        """Detect the validation failure an instance returns for a duplicate add."""

        if response.status_code != 400:
            return False

        body = response.text.lower()
        return "already been added" in body or "existsvalidator" in body
