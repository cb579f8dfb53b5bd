"""Initial migration: create tournament, participant, bracketmatchup tables

Revision ID: 001_initial
Revises:
Create Date: 2025-06-01 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tournament",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("genre", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("language", sa.String(), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("max_players", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("bracket_size", sa.Integer(), nullable=True),
        sa.Column("seeding_policy", sa.String(), nullable=True),
        sa.Column("bracket_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("champion_participant_id", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tournament_creator_id", "tournament", ["creator_id"])
    op.create_index("ix_tournament_status", "tournament", ["status"])

    op.create_table(
        "participant",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("participant_id", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "participant_id", name="uq_tournament_participant"),
    )
    op.create_index("ix_participant_tournament_id", "participant", ["tournament_id"])

    op.create_table(
        "bracketmatchup",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("matchup_code", sa.String(), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("sequence_in_round", sa.Integer(), nullable=False),
        sa.Column("player1_kind", sa.String(), nullable=False),
        sa.Column("player1_participant_id", sa.String(), nullable=True),
        sa.Column("player1_display_name", sa.String(), nullable=False),
        sa.Column("player1_source_code", sa.String(), nullable=True),
        sa.Column("player1_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("player2_kind", sa.String(), nullable=False),
        sa.Column("player2_participant_id", sa.String(), nullable=True),
        sa.Column("player2_display_name", sa.String(), nullable=False),
        sa.Column("player2_source_code", sa.String(), nullable=True),
        sa.Column("player2_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_participant_id", sa.String(), nullable=True),
        sa.Column("is_bye", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_placeholder", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "matchup_code", name="uq_tournament_matchup_code"),
    )
    op.create_index("ix_bracketmatchup_tournament_id", "bracketmatchup", ["tournament_id"])


def downgrade() -> None:
    op.drop_index("ix_bracketmatchup_tournament_id", table_name="bracketmatchup")
    op.drop_table("bracketmatchup")
    op.drop_index("ix_participant_tournament_id", table_name="participant")
    op.drop_table("participant")
    op.drop_index("ix_tournament_status", table_name="tournament")
    op.drop_index("ix_tournament_creator_id", table_name="tournament")
    op.drop_table("tournament")
