"""AcquisitionInstance model"""

from datetime import datetime

import sqlalchemy
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment.db.base_model import Base


class AcquisitionInstance(Base):
    """
    A configured Radarr or Sonarr instance.

    Rows are managed by the settings UI; the engine only reads them.
    `quality_profile` holds the backend's numeric profile id as text.
    """

    __tablename__ = "arr_services"

    id: Mapped[int] = mapped_column(sqlalchemy.Integer, primary_key=True)
    type: Mapped[str] = mapped_column(sqlalchemy.String(16), nullable=False)
    name: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    base_url: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    api_key: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    quality_profile: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    root_folder_path: Mapped[str] = mapped_column(sqlalchemy.String, nullable=False)
    minimum_availability: Mapped[str | None] = mapped_column(sqlalchemy.String)
    is_4k: Mapped[bool] = mapped_column(
        sqlalchemy.Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sqlalchemy.DateTime, nullable=False, default=datetime.now
    )

    def __repr__(self):
        return f"AcquisitionInstance(id={self.id}, type={self.type}, name={self.name}, is_4k={self.is_4k})"
