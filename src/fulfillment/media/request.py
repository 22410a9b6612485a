"""MediaRequest model"""

import json
from datetime import datetime
from typing import Any

import sqlalchemy
from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, validates

from fulfillment.db.base_model import Base
from fulfillment.errors import SeasonParsingFailed
from fulfillment.media.state import MediaType, RequestStatus


class MediaRequest(Base):
    """A user's request for a movie or a series (optionally a subset of its seasons)."""

    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    media_type: Mapped[str] = mapped_column(sqlalchemy.String(16), nullable=False)
    tmdb_id: Mapped[int | None] = mapped_column(sqlalchemy.Integer)
    title: Mapped[str | None] = mapped_column(sqlalchemy.String)
    status: Mapped[str] = mapped_column(
        sqlalchemy.String(16), nullable=False, default=RequestStatus.Pending.value
    )
    notes: Mapped[str | None] = mapped_column(sqlalchemy.Text)
    is_4k: Mapped[bool] = mapped_column(
        sqlalchemy.Boolean, nullable=False, default=False
    )
    seasons: Mapped[str | None] = mapped_column(sqlalchemy.Text)
    season_statuses: Mapped[str | None] = mapped_column(sqlalchemy.Text)
    created_at: Mapped[datetime] = mapped_column(
        sqlalchemy.DateTime, nullable=False, default=datetime.now
    )
    updated_at: Mapped[datetime] = mapped_column(
        sqlalchemy.DateTime, nullable=False, default=datetime.now
    )
    fulfilled_at: Mapped[datetime | None] = mapped_column(sqlalchemy.DateTime)
    approver_id: Mapped[str | None] = mapped_column(sqlalchemy.String)
    on_behalf_of: Mapped[str | None] = mapped_column(sqlalchemy.String)
    poster_url: Mapped[str | None] = mapped_column(sqlalchemy.String)

    __table_args__ = (
        CheckConstraint(
            "(status = 'fulfilled' AND fulfilled_at IS NOT NULL) "
            "OR (status <> 'fulfilled' AND fulfilled_at IS NULL)",
            name="ck_requests_fulfilled_at",
        ),
        Index("ix_requests_status", "status"),
        Index("ix_requests_tmdb_id_media_type", "tmdb_id", "media_type"),
    )

    @validates("seasons")
    def validate_seasons(self, key: str, value: str | None) -> str | None:
        current = self.__dict__.get(key)
        if current is not None and value != current:
            raise ValueError(
                f"Seasons of request {self.id} are immutable once set; create a new request instead"
            )
        return value

    @property
    def log_string(self) -> str:
        return f"{self.title or 'Unknown'} (request {self.id}, tmdb {self.tmdb_id})"

    @property
    def kind(self) -> MediaType | None:
        try:
            return MediaType(self.media_type)
        except ValueError:
            return None

    def requested_seasons(self) -> list[int]:
        """
        Parse the stored season selection.

        Returns:
            list[int]: Requested season numbers, empty when the whole series was requested.

        Raises:
            SeasonParsingFailed: If the stored value is not a JSON list of integers.
        """

        if not self.seasons:
            return []

        try:
            seasons = json.loads(self.seasons)
        except json.JSONDecodeError as e:
            raise SeasonParsingFailed(f"request {self.id}: {e}") from e

        if not isinstance(seasons, list) or not all(
            isinstance(season, int) and not isinstance(season, bool)
            for season in seasons
        ):
            raise SeasonParsingFailed(
                f"request {self.id}: expected a list of season numbers, got {self.seasons!r}"
            )

        return seasons

    def get_season_statuses(self) -> dict[str, Any]:
        if not self.season_statuses:
            return {}
        try:
            statuses = json.loads(self.season_statuses)
        except json.JSONDecodeError:
            return {}
        return statuses if isinstance(statuses, dict) else {}

    def __repr__(self):
        return f"MediaRequest(id={self.id}, media_type={self.media_type}, tmdb_id={self.tmdb_id}, status={self.status})"
