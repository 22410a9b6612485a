from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqla_wrapper import SQLAlchemy, Session
from sqlalchemy import text

from alembic import command
from alembic.config import Config
from fulfillment.utils import root_dir

engine_options = {
    "pool_size": 10,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
    "echo": False,
}


def create_db(url: str, **options: Any) -> SQLAlchemy:
    """
    Build the storage handle for a database URL.

    Pool sizing only applies to server databases; SQLite URLs get the
    driver defaults unless options are passed explicitly.
    """

    if not options:
        options = {} if url.startswith("sqlite") else dict(engine_options)

    return SQLAlchemy(
        url,
        engine_options=options,
        session_options={"expire_on_commit": False},
    )


@contextmanager
def db_session(db: SQLAlchemy) -> Generator[Session, Any, None]:
    with db.Session() as session:
        s: Session = session

        yield s


def validate_database(db: SQLAlchemy) -> bool:
    """Check that the database behind the storage handle is reachable."""

    try:
        with db_session(db) as session:
            session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


def run_migrations(database_url: str) -> None:
    """Upgrade the database schema to the latest revision."""

    alembic_cfg = Config(root_dir / "src" / "alembic.ini")
    alembic_cfg.set_main_option("script_location", str(root_dir / "src" / "alembic"))
    # configparser interpolation treats "%" as a marker
    alembic_cfg.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

    try:
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        raise

    logger.log("DATABASE", "Database migrations completed successfully")
