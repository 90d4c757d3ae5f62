"""profiles, projects, connection requests, connections

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=128), nullable=True),
        sa.Column("email", sa.String(length=256), nullable=True),
        sa.Column("avatar_file_id", sa.String(length=256), nullable=True),
        sa.Column("skills", sa.JSON(), nullable=False),
        sa.Column("github_url", sa.String(length=256), nullable=True),
        sa.Column("website_url", sa.String(length=256), nullable=True),
        sa.Column("linkedin_url", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_profiles_telegram_id", "profiles", ["telegram_id"], unique=True)
    op.create_index("ix_profiles_username", "profiles", ["username"], unique=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tech_stack", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("contributors_needed", sa.JSON(), nullable=False),
        sa.Column("github_url", sa.String(length=256), nullable=True),
        sa.Column("live_url", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_owner_id", "projects", ["owner_id"])

    op.create_table(
        "connection_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("receiver_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["sender_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["receiver_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "sender_id", "receiver_id", name="uq_connection_request_pair"
        ),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_connection_requests_sender_id", "connection_requests", ["sender_id"]
    )
    op.create_index(
        "ix_connection_requests_receiver_id", "connection_requests", ["receiver_id"]
    )

    op.create_table(
        "connections",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("connected_user_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["profiles.id"]),
        sa.ForeignKeyConstraint(["connected_user_id"], ["profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "connected_user_id", name="uq_connection_half"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_connections_user_id", "connections", ["user_id"])
    op.create_index(
        "ix_connections_connected_user_id", "connections", ["connected_user_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_connections_connected_user_id", table_name="connections")
    op.drop_index("ix_connections_user_id", table_name="connections")
    op.drop_table("connections")

    op.drop_index(
        "ix_connection_requests_receiver_id", table_name="connection_requests"
    )
    op.drop_index("ix_connection_requests_sender_id", table_name="connection_requests")
    op.drop_table("connection_requests")

    op.drop_index("ix_projects_owner_id", table_name="projects")
    op.drop_table("projects")

    op.drop_index("ix_profiles_username", table_name="profiles")
    op.drop_index("ix_profiles_telegram_id", table_name="profiles")
    op.drop_table("profiles")
