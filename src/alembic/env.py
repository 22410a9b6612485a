import logging

from sqlalchemy import engine_from_config, pool

from alembic import context
from fulfillment.db.base_model import get_base_metadata
from fulfillment.settings.manager import settings_manager
from fulfillment.utils.logging import LoguruHandler, logger

alembic_logger = logging.getLogger("alembic")
alembic_logger.handlers = [LoguruHandler()]
alembic_logger.propagate = False
alembic_logger.setLevel(logging.INFO)

config = context.config

# `fulfillment migrate` sets the URL; a bare `alembic upgrade` falls back to settings
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option(
        "sqlalchemy.url", settings_manager.settings.database.host.replace("%", "%%")
    )

target_metadata = get_base_metadata()


def _configure(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=True,  # SQLite cannot ALTER most constraints in place
        **options,
    )


def _run() -> None:
    with context.begin_transaction():
        logger.log("DATABASE", f"Upgrading schema to {context.get_head_revision()}")
        context.run_migrations()


if context.is_offline_mode():
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    _run()
else:
    engine = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        _configure(connection=connection)
        _run()
