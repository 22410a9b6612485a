from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.media.availability import SeasonAvailability, is_season_complete
from fulfillment.media.instance import AcquisitionInstance
from fulfillment.media.request import MediaRequest
from fulfillment.media.state import MediaType, RequestStatus, ServiceType


# Requests


def get_request_by_id(session: Session, request_id: int) -> MediaRequest | None:
    """
    Retrieve a request by its database ID.

    Parameters:
        session (Session): Database session to use.
        request_id (int): Primary key of the request.

    Returns:
        MediaRequest | None: The request detached from the session, or `None` if it does not exist.
    """

    request = session.execute(
        select(MediaRequest).where(MediaRequest.id == request_id)
    ).scalar_one_or_none()

    if request:
        session.expunge(request)

    return request


def get_requests_by_status(
    session: Session,
    status: RequestStatus,
    media_type: MediaType | None = None,
) -> list[MediaRequest]:
    """Return detached requests in `status`, oldest first."""

    query = select(MediaRequest).where(MediaRequest.status == status.value)

    if media_type:
        query = query.where(MediaRequest.media_type == media_type.value)

    requests = list(session.execute(query.order_by(MediaRequest.id)).scalars().all())
    session.expunge_all()

    return requests


def get_series_requests_for_title(
    session: Session, tmdb_id: int, status: RequestStatus = RequestStatus.Approved
) -> list[MediaRequest]:
    """Detached series requests of one title in `status`."""

    requests = list(
        session.execute(
            select(MediaRequest)
            .where(MediaRequest.tmdb_id == tmdb_id)
            .where(MediaRequest.media_type == MediaType.TV.value)
            .where(MediaRequest.status == status.value)
            .order_by(MediaRequest.id)
        )
        .scalars()
        .all()
    )
    session.expunge_all()

    return requests


def get_requested_series_tmdb_ids(session: Session) -> list[int]:
    """Distinct TMDB ids of series with an approved or fulfilled request."""

    rows = session.execute(
        select(MediaRequest.tmdb_id)
        .where(MediaRequest.media_type == MediaType.TV.value)
        .where(
            MediaRequest.status.in_(
                [RequestStatus.Approved.value, RequestStatus.Fulfilled.value]
            )
        )
        .where(MediaRequest.tmdb_id.is_not(None))
        .distinct()
        .order_by(MediaRequest.tmdb_id)
    ).scalars()

    return list(rows)


def fulfill_request(session: Session, request_id: int, now: datetime) -> bool:
    """
    Transition an approved request to fulfilled.

    Status, `fulfilled_at` and `updated_at` are written by one guarded UPDATE in a
    single transaction, so a request is never observed fulfilled without a
    timestamp. Requests that are not approved are left untouched.

    Parameters:
        session (Session): Database session to use; the change is committed.
        request_id (int): Request to fulfill.
        now (datetime): Timestamp recorded as `fulfilled_at` and `updated_at`.

    Returns:
        bool: True if this call performed the transition.
    """

    result = session.execute(
        update(MediaRequest)
        .where(MediaRequest.id == request_id)
        .where(MediaRequest.status == RequestStatus.Approved.value)
        .values(
            status=RequestStatus.Fulfilled.value,
            fulfilled_at=now,
            updated_at=now,
        )
    )
    session.commit()

    return result.rowcount == 1


def update_season_statuses(
    session: Session,
    request_id: int,
    season_statuses: dict[str, Any],
    now: datetime,
) -> None:
    """Replace a request's per-season status map. Never touches `status`."""

    session.execute(
        update(MediaRequest)
        .where(MediaRequest.id == request_id)
        .values(season_statuses=json.dumps(season_statuses, sort_keys=True), updated_at=now)
    )
    session.commit()


# Acquisition instances


def get_instances_by_type(
    session: Session, service_type: ServiceType
) -> list[AcquisitionInstance]:
    """Configured instances of one kind, in configuration order."""

    instances = list(
        session.execute(
            select(AcquisitionInstance)
            .where(AcquisitionInstance.type == service_type.value)
            .order_by(AcquisitionInstance.id)
        )
        .scalars()
        .all()
    )
    session.expunge_all()

    return instances


# Season availability


def get_season_availability(
    session: Session, tmdb_id: int, season_number: int
) -> SeasonAvailability | None:
    return session.execute(
        select(SeasonAvailability)
        .where(SeasonAvailability.tmdb_id == tmdb_id)
        .where(SeasonAvailability.season_number == season_number)
    ).scalar_one_or_none()


def get_show_season_availability(
    session: Session, tmdb_id: int, season_numbers: Sequence[int] | None = None
) -> list[SeasonAvailability]:
    """Season rows of a title ordered by season number, optionally limited to `season_numbers`."""

    query = select(SeasonAvailability).where(SeasonAvailability.tmdb_id == tmdb_id)

    if season_numbers:
        query = query.where(SeasonAvailability.season_number.in_(list(season_numbers)))

    return list(
        session.execute(query.order_by(SeasonAvailability.season_number))
        .scalars()
        .all()
    )


def upsert_season_availability(
    session: Session,
    tmdb_id: int,
    season_number: int,
    episode_count: int,
    available_episodes: int,
    now: datetime,
) -> SeasonAvailability:
    """
    Insert or update the availability row of one season and commit.

    `is_complete` is always derived from the two counts. A row whose counts are
    unchanged is not rewritten, so `last_updated` records the last change and
    repeated reconciliation against an unchanged library leaves rows identical.
    Concurrent writers are last-writer-wins: losing an insert race turns into
    an update of the winner's row.

    Parameters:
        session (Session): Database session to use.
        tmdb_id (int): Title identifier.
        season_number (int): Season number (> 0).
        episode_count (int): Authoritative total to store.
        available_episodes (int): Episodes observed in the library.
        now (datetime): Timestamp for `last_updated`.

    Returns:
        SeasonAvailability: The stored row.
    """

    is_complete = is_season_complete(episode_count, available_episodes)
    row = get_season_availability(session, tmdb_id, season_number)

    if row is None:
        row = SeasonAvailability(
            tmdb_id=tmdb_id,
            season_number=season_number,
            episode_count=episode_count,
            available_episodes=available_episodes,
            is_complete=is_complete,
            last_updated=now,
        )
        session.add(row)

        try:
            session.commit()
            return row
        except IntegrityError:
            session.rollback()
            logger.log(
                "DATABASE",
                f"Concurrent insert for tmdb {tmdb_id} season {season_number}, updating instead",
            )
            row = get_season_availability(session, tmdb_id, season_number)
            if row is None:
                raise

    if (
        row.episode_count == episode_count
        and row.available_episodes == available_episodes
        and row.is_complete == is_complete
    ):
        return row

    row.episode_count = episode_count
    row.available_episodes = available_episodes
    row.is_complete = is_complete
    row.last_updated = now
    session.commit()

    return row
