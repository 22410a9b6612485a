"""Initial schema: requests, season availability and acquisition instances

Revision ID: 3f2a9c1d7b44
Revises:
Create Date: 2026-03-01 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b44"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    tables = inspector.get_table_names()

    # Tables may already exist when the request store was created by the API service
    if "requests" not in tables:
        op.create_table(
            "requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("media_type", sa.String(length=16), nullable=False),
            sa.Column("tmdb_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_4k", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("seasons", sa.Text(), nullable=True),
            sa.Column("season_statuses", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("fulfilled_at", sa.DateTime(), nullable=True),
            sa.Column("approver_id", sa.String(), nullable=True),
            sa.Column("on_behalf_of", sa.String(), nullable=True),
            sa.Column("poster_url", sa.String(), nullable=True),
            sa.CheckConstraint(
                "(status = 'fulfilled' AND fulfilled_at IS NOT NULL) "
                "OR (status <> 'fulfilled' AND fulfilled_at IS NULL)",
                name="ck_requests_fulfilled_at",
            ),
        )
        op.create_index("ix_requests_status", "requests", ["status"])
        op.create_index(
            "ix_requests_tmdb_id_media_type", "requests", ["tmdb_id", "media_type"]
        )

    if "season_availability" not in tables:
        op.create_table(
            "season_availability",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tmdb_id", sa.Integer(), nullable=False),
            sa.Column("season_number", sa.Integer(), nullable=False),
            sa.Column("episode_count", sa.Integer(), nullable=False),
            sa.Column("available_episodes", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("last_updated", sa.DateTime(), nullable=True),
            sa.UniqueConstraint(
                "tmdb_id", "season_number", name="uq_season_availability_tmdb_season"
            ),
        )

    if "arr_services" not in tables:
        op.create_table(
            "arr_services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("type", sa.String(length=16), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("base_url", sa.String(), nullable=False),
            sa.Column("api_key", sa.String(), nullable=False),
            sa.Column("quality_profile", sa.String(), nullable=False),
            sa.Column("root_folder_path", sa.String(), nullable=False),
            sa.Column("minimum_availability", sa.String(), nullable=True),
            sa.Column("is_4k", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )


def downgrade() -> None:
    op.drop_table("arr_services")
    op.drop_table("season_availability")
    op.drop_index("ix_requests_tmdb_id_media_type", table_name="requests")
    op.drop_index("ix_requests_status", table_name="requests")
    op.drop_table("requests")
