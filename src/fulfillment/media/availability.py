"""SeasonAvailability model"""

from datetime import datetime

import sqlalchemy
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.db.base_model import Base


def is_season_complete(episode_count: int, available_episodes: int) -> bool:
    return episode_count > 0 and available_episodes >= episode_count


class SeasonAvailability(Base):
    """Per-(title, season) episode totals as last reconciled against the library index."""

    __tablename__ = "season_availability"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    tmdb_id: Mapped[int] = mapped_column(sqlalchemy.Integer, nullable=False)
    season_number: Mapped[int] = mapped_column(sqlalchemy.Integer, nullable=False)
    episode_count: Mapped[int] = mapped_column(sqlalchemy.Integer, nullable=False)
    available_episodes: Mapped[int] = mapped_column(
        sqlalchemy.Integer, nullable=False, default=0
    )
    is_complete: Mapped[bool] = mapped_column(
        sqlalchemy.Boolean, nullable=False, default=False
    )
    last_updated: Mapped[datetime | None] = mapped_column(sqlalchemy.DateTime)

    __table_args__ = (
        UniqueConstraint(
            "tmdb_id", "season_number", name="uq_season_availability_tmdb_season"
        ),
    )

    def __repr__(self):
        return (
            f"SeasonAvailability(tmdb_id={self.tmdb_id}, season={self.season_number}, "
            f"{self.available_episodes}/{self.episode_count}, complete={self.is_complete})"
        )
