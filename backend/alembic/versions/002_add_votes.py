"""Add vote table (one vote per voter per matchup)

Revision ID: 002_add_votes
Revises: 001_initial
Create Date: 2025-06-02 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "002_add_votes"
down_revision = "001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "vote",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tournament_id", sa.Integer(), nullable=False),
        sa.Column("matchup_code", sa.String(), nullable=False),
        sa.Column("voter_id", sa.String(), nullable=False),
        sa.Column("participant_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["tournament_id"], ["tournament.id"]),
        sa.UniqueConstraint("tournament_id", "matchup_code", "voter_id", name="uq_vote_voter_matchup"),
    )
    op.create_index("ix_vote_tournament_id", "vote", ["tournament_id"])


def downgrade() -> None:
    op.drop_index("ix_vote_tournament_id", table_name="vote")
    op.drop_table("vote")
