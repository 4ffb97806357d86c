"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. Tables in FK dependency order (users → groups → memberships
     → group_weeks → tracks → votes)
  2. Indexes (including the partial unique index uq_group_weeks_single_active)

ON DELETE policies:
  groups.created_by_user_id   → SET NULL  (group outlives its creator's profile)
  memberships.user_id         → RESTRICT
  memberships.group_id        → CASCADE
  group_weeks.group_id        → CASCADE
  tracks.group_week_id        → CASCADE   (tracks owned by their week)
  tracks.added_by_user_id     → SET NULL
  votes.(track_id, group_week_id) → CASCADE (votes owned by their track)
  votes.user_id               → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── Step 1: users ──────────────────────────────────────────────────────
    # id is the identity provider's opaque subject, never generated here.

    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )

    # ── Step 2: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("invite_code", sa.String(8), nullable=False),
        sa.Column(
            "created_by_user_id",
            sa.String(64),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_groups_creator"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.UniqueConstraint("invite_code", name="uq_groups_invite_code"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_groups_name_nonempty",
        ),
        sa.CheckConstraint(
            "LENGTH(invite_code) = 8",
            name="ck_groups_invite_code_length",
        ),
    )

    # ── Step 3: memberships ────────────────────────────────────────────────
    # role is VARCHAR + CHECK, matching Enum(native_enum=False) in the model.

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column(
            "role",
            sa.String(10),
            nullable=False,
            server_default="member",
        ),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="member_role"),
    )

    # ── Step 4: group_weeks ────────────────────────────────────────────────

    op.create_table(
        "group_weeks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_group_weeks_group"),
            nullable=False,
        ),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("week_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("week_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("TRUE"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_group_weeks"),
        sa.UniqueConstraint(
            "group_id", "year", "week_number",
            name="uq_group_weeks_group_year_week",
        ),
        sa.CheckConstraint(
            "week_number BETWEEN 1 AND 53",
            name="ck_group_weeks_week_number_range",
        ),
        sa.CheckConstraint(
            "week_end > week_start",
            name="ck_group_weeks_end_after_start",
        ),
    )

    # ── Step 5: tracks ─────────────────────────────────────────────────────
    # INV-3: UNIQUE(group_week_id, catalog_id).
    # UNIQUE(id, group_week_id) is the target of the votes composite FK.

    op.create_table(
        "tracks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_week_id",
            sa.Integer(),
            sa.ForeignKey("group_weeks.id", ondelete="CASCADE", name="fk_tracks_week"),
            nullable=False,
        ),
        sa.Column("catalog_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("artist", sa.String(255), nullable=False),
        sa.Column("album", sa.String(255), nullable=True),
        sa.Column("artwork_url", sa.String(500), nullable=True),
        sa.Column("preview_url", sa.String(500), nullable=True),
        sa.Column(
            "added_by_user_id",
            sa.String(64),
            sa.ForeignKey("users.id", ondelete="SET NULL", name="fk_tracks_submitter"),
            nullable=True,
        ),
        sa.Column(
            "added_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_tracks"),
        sa.UniqueConstraint("group_week_id", "catalog_id", name="uq_tracks_week_catalog"),
        sa.UniqueConstraint("id", "group_week_id", name="uq_tracks_id_week"),
    )

    # ── Step 6: votes ──────────────────────────────────────────────────────
    # INV-4: (track_id, group_week_id) must name a track of the same week.

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("track_id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.String(64),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_votes_user"),
            nullable=False,
        ),
        sa.Column(
            "group_week_id",
            sa.Integer(),
            sa.ForeignKey("group_weeks.id", ondelete="CASCADE", name="fk_votes_week"),
            nullable=False,
        ),
        sa.Column("coins_spent", sa.Integer(), nullable=False),
        sa.Column(
            "voted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_votes"),
        sa.ForeignKeyConstraint(
            ["track_id", "group_week_id"],
            ["tracks.id", "tracks.group_week_id"],
            ondelete="CASCADE",
            name="fk_votes_track_same_week",
        ),
        sa.CheckConstraint("coins_spent > 0", name="ck_votes_coins_positive"),
    )

    # ── Step 7: Indexes ────────────────────────────────────────────────────

    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_group_weeks_group_id", "group_weeks", ["group_id"])

    # INV-2: partial unique index — at most one active week per group.
    op.create_index(
        "uq_group_weeks_single_active",
        "group_weeks",
        ["group_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_index("ix_tracks_group_week_id", "tracks", ["group_week_id"])
    op.create_index("ix_votes_track_id", "votes", ["track_id"])

    # Budget lookups: SUM(coins_spent) per (week, user).
    op.create_index("ix_votes_week_user", "votes", ["group_week_id", "user_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. In production, prefer a corrective
    migration over a rollback.
    """

    op.drop_index("ix_votes_week_user",           table_name="votes")
    op.drop_index("ix_votes_track_id",            table_name="votes")
    op.drop_index("ix_tracks_group_week_id",      table_name="tracks")
    op.drop_index("uq_group_weeks_single_active", table_name="group_weeks")
    op.drop_index("ix_group_weeks_group_id",      table_name="group_weeks")
    op.drop_index("ix_memberships_group_id",      table_name="memberships")
    op.drop_index("ix_memberships_user_id",       table_name="memberships")

    op.drop_table("votes")
    op.drop_table("tracks")
    op.drop_table("group_weeks")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")
