"""Season availability reconciliation against the library index."""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqla_wrapper import SQLAlchemy

from fulfillment.apis.library_api import LibraryAPI, LibraryAPIError, LibraryItem
from fulfillment.apis.tmdb_api import TMDBApi, TMDBApiError
from fulfillment.db.db import db_session
from fulfillment.db.db_functions import (
    get_season_availability,
    get_show_season_availability,
    upsert_season_availability,
)
from fulfillment.errors import LibraryConnectionError
from fulfillment.media.availability import SeasonAvailability
from fulfillment.media.models import SeasonAvailabilityInfo, ShowAvailability
from fulfillment.media.state import AvailabilityStatus, RequestStatus


@dataclass(frozen=True)
class ObservedSeason:
    season_number: int
    episodes: int


def group_episodes_by_season(episodes: Iterable[LibraryItem]) -> list[ObservedSeason]:
    """
    Count library episodes per season, ordered by season number.

    Episodes without a season number, and specials (season 0), are discarded.
    """

    counts: dict[int, int] = {}
    for episode in episodes:
        season_number = episode.parent_index_number
        if not season_number:
            continue
        counts[season_number] = counts.get(season_number, 0) + 1

    return [
        ObservedSeason(season_number=number, episodes=counts[number])
        for number in sorted(counts)
    ]


def overall_status(
    seasons: Sequence[SeasonAvailabilityInfo],
    requested: Sequence[int] | None = None,
) -> AvailabilityStatus:
    """
    Aggregate season rows into one status.

    A requested season without a row can never be complete, so it keeps the
    title at best partial.
    """

    if not seasons:
        return AvailabilityStatus.NotAvailable

    known = {season.season_number for season in seasons}
    missing = set(requested or []) - known

    if not missing and all(season.is_complete for season in seasons):
        return AvailabilityStatus.Complete
    if any(season.available_episodes > 0 for season in seasons):
        return AvailabilityStatus.Partial

    return AvailabilityStatus.NotAvailable


def build_season_statuses(
    request_status: str,
    seasons: Sequence[SeasonAvailabilityInfo],
) -> dict[str, dict[str, Any]]:
    """Per-season status map stored on series requests."""

    statuses = {}
    for season in seasons:
        if season.is_complete:
            status = RequestStatus.Fulfilled.value
        elif season.available_episodes > 0:
            status = "partial"
        else:
            status = request_status

        statuses[f"season_{season.season_number}"] = {
            "status": status,
            "episodes": f"{season.available_episodes}/{season.episode_count}",
            "available_episodes": season.available_episodes,
            "total_episodes": season.episode_count,
            "last_updated": season.last_updated.isoformat() if season.last_updated else None,
        }

    return statuses


class AvailabilityReconciler:
    """
    Keeps SeasonAvailability rows in line with what the library index holds.

    Every sync is idempotent: against an unchanged library, rows are left
    exactly as they were, including `last_updated`.
    """

    def __init__(
        self,
        db: SQLAlchemy,
        library: LibraryAPI | None,
        metadata: TMDBApi | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.library = library
        self.metadata = metadata
        self.clock = clock

    def sync_availability(self, tmdb_id: int) -> list[SeasonAvailability]:
        """
        Re-derive the season rows of a series from the library index.

        Seasons that fail to update are logged and skipped; the others are
        still reconciled.

        Returns:
            list[SeasonAvailability]: The stored rows, ordered by season number.

        Raises:
            LibraryConnectionError: If the episode listing could not be fetched.
        """

        if not self.library:
            raise LibraryConnectionError("no library index configured")

        try:
            episodes = self.library.get_episodes_by_show(tmdb_id)
        except LibraryAPIError as e:
            raise LibraryConnectionError(str(e)) from e

        observed = group_episodes_by_season(episodes)
        if not observed:
            logger.log("AVAILABILITY", f"No episodes of tmdb {tmdb_id} in the library")
            return []

        rows: list[SeasonAvailability] = []
        with db_session(self.db) as session:
            for season in observed:
                try:
                    existing = get_season_availability(session, tmdb_id, season.season_number)
                    if existing and existing.episode_count > 0:
                        total = existing.episode_count
                    else:
                        total = self._season_total(tmdb_id, season)

                    rows.append(
                        upsert_season_availability(
                            session,
                            tmdb_id,
                            season.season_number,
                            total,
                            season.episodes,
                            self.clock(),
                        )
                    )
                except Exception as e:
                    session.rollback()
                    logger.error(
                        f"Failed to update availability of tmdb {tmdb_id} season {season.season_number}: {e}"
                    )

        logger.log(
            "AVAILABILITY",
            f"Synced {len(rows)}/{len(observed)} season(s) of tmdb {tmdb_id}: "
            + ", ".join(
                f"S{row.season_number:02d} {row.available_episodes}/{row.episode_count}"
                for row in rows
            ),
        )

        return rows

    def get_availability(
        self,
        tmdb_id: int,
        seasons: Sequence[int] | None = None,
        title: str | None = None,
    ) -> ShowAvailability:
        """Assemble the availability view of a title, limited to `seasons` when given."""

        with db_session(self.db) as session:
            rows = [
                SeasonAvailabilityInfo.model_validate(row)
                for row in get_show_season_availability(session, tmdb_id, seasons)
            ]

        return ShowAvailability(
            tmdb_id=tmdb_id,
            title=title,
            total_seasons=len(rows),
            seasons=rows,
            overall_status=overall_status(rows, seasons),
        )

    def refresh_season(
        self, tmdb_id: int, season_number: int, total_episodes: int
    ) -> SeasonAvailability:
        """
        Re-read one season from the library and store it with a known total.

        Raises:
            ValueError: If `season_number` or `total_episodes` is not positive.
            LibraryConnectionError: If the library could not be queried.
        """

        if season_number < 1 or total_episodes < 1:
            raise ValueError(
                f"season {season_number} with {total_episodes} episode(s) cannot be tracked"
            )

        if not self.library:
            raise LibraryConnectionError("no library index configured")

        try:
            episodes = self.library.get_episodes_by_show_and_season(tmdb_id, season_number)
        except LibraryAPIError as e:
            raise LibraryConnectionError(str(e)) from e

        with db_session(self.db) as session:
            row = upsert_season_availability(
                session, tmdb_id, season_number, total_episodes, len(episodes), self.clock()
            )

        logger.log(
            "AVAILABILITY",
            f"Refreshed tmdb {tmdb_id} S{season_number:02d}: {row.available_episodes}/{row.episode_count}",
        )

        return row

    def _season_total(self, tmdb_id: int, season: ObservedSeason) -> int:
        """Authoritative episode total of a season not yet tracked."""

        if self.metadata:
            try:
                total = self.metadata.get_season_episode_count(tmdb_id, season.season_number)
                if total > 0:
                    return total
            except (TMDBApiError, ValidationError) as e:
                logger.warning(
                    f"Metadata lookup failed for tmdb {tmdb_id} season {season.season_number}: {e}"
                )

        # Provisional: reads as complete until metadata says otherwise
        logger.log(
            "AVAILABILITY",
            f"Using observed count {season.episodes} as provisional total for tmdb {tmdb_id} "
            f"season {season.season_number}",
        )
        return season.episodes
