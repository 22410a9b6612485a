from sqlalchemy import MetaData, orm


class Base(orm.DeclarativeBase):
    """Base class for all database models"""

    pass


def get_base_metadata() -> MetaData:
    """Get the Base metadata for Alembic migrations"""

    # Import models to register them with Base.metadata
    from fulfillment.media import (
        AcquisitionInstance,  # pyright: ignore[reportUnusedImport]
        MediaRequest,  # pyright: ignore[reportUnusedImport]
        SeasonAvailability,  # pyright: ignore[reportUnusedImport]
    )

    return Base.metadata
