"""initial_schema

Revision ID: 5b1e7c2a9d40
Revises:
Create Date: 2026-10-19 10:12:31.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5b1e7c2a9d40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial tables: user, trip, membership, cotravelersnapshot, proposal,
    negotiationcategory, triprating."""
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("kyc_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trips_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("trips_dropped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("avg_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rating_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("abusive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("toxic_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spam_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("violent_content_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("comm_tone_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("vibe_pace", sa.String(), nullable=True),
        sa.Column("vibe_commitment", sa.String(), nullable=True),
        sa.Column("vibe_food", sa.String(), nullable=True),
        sa.Column("vibe_social", sa.String(), nullable=True),
        sa.Column("vibe_travel_mode", sa.String(), nullable=True),
        sa.Column("vibe_night_style", sa.String(), nullable=True),
        sa.Column("vibe_solo_time", sa.String(), nullable=True),
        sa.Column("vibe_budget", sa.String(), nullable=True),
        sa.Column("vibe_checked_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "trip",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("lifecycle_status", sa.String(), nullable=False, server_default="PLANNING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_trip_owner_id", "trip", ["owner_id"])
    op.create_table(
        "membership",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(), nullable=False, server_default="REQUESTED"),
        sa.Column("paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trust_score_at_joining", sa.Float(), nullable=True),
        sa.Column("amount_paid", sa.Float(), nullable=True),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trip_id", "user_id", name="uq_membership_trip_user"),
    )
    op.create_index("ix_membership_trip_id", "membership", ["trip_id"])
    op.create_index("ix_membership_user_id", "membership", ["user_id"])
    op.create_index("ix_membership_state", "membership", ["state"])
    op.create_table(
        "cotravelersnapshot",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("vibe", sa.JSON(), nullable=True),
        sa.Column("trust_signals", sa.JSON(), nullable=True),
        sa.Column("trust_score", sa.Float(), nullable=False, server_default="5.0"),
        sa.Column("captured_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trip_id", "user_id", name="uq_snapshot_trip_user"),
    )
    op.create_index("ix_cotravelersnapshot_trip_id", "cotravelersnapshot", ["trip_id"])
    op.create_table(
        "proposal",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("proposer_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("provider", sa.String(), nullable=True),
        sa.Column("price_per_person", sa.Float(), nullable=False),
        sa.Column("depart_time", sa.String(), nullable=True),
        sa.Column("arrive_time", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("voter_ids", sa.String(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["proposer_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_proposal_trip_id", "proposal", ["trip_id"])
    op.create_index("ix_proposal_category", "proposal", ["category"])
    op.create_table(
        "negotiationcategory",
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("locked_proposal_id", sa.Integer(), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["locked_proposal_id"], ["proposal.id"]),
        sa.PrimaryKeyConstraint("trip_id", "category"),
    )
    op.create_table(
        "triprating",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("trip_id", sa.Integer(), nullable=False),
        sa.Column("rater_id", sa.Integer(), nullable=False),
        sa.Column("rated_id", sa.Integer(), nullable=False),
        sa.Column("respect", sa.Integer(), nullable=False),
        sa.Column("reliability", sa.Integer(), nullable=False),
        sa.Column("cooperation", sa.Integer(), nullable=False),
        sa.Column("safety", sa.Integer(), nullable=False),
        sa.Column("feedback", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"]),
        sa.ForeignKeyConstraint(["rater_id"], ["user.id"]),
        sa.ForeignKeyConstraint(["rated_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("trip_id", "rater_id", "rated_id", name="uq_rating_trip_pair"),
    )
    op.create_index("ix_triprating_trip_id", "triprating", ["trip_id"])
    op.create_index("ix_triprating_rated_id", "triprating", ["rated_id"])


def downgrade() -> None:
    """Drop all initial tables."""
    op.drop_index("ix_triprating_rated_id", table_name="triprating")
    op.drop_index("ix_triprating_trip_id", table_name="triprating")
    op.drop_table("triprating")
    op.drop_table("negotiationcategory")
    op.drop_index("ix_proposal_category", table_name="proposal")
    op.drop_index("ix_proposal_trip_id", table_name="proposal")
    op.drop_table("proposal")
    op.drop_index("ix_cotravelersnapshot_trip_id", table_name="cotravelersnapshot")
    op.drop_table("cotravelersnapshot")
    op.drop_index("ix_membership_state", table_name="membership")
    op.drop_index("ix_membership_user_id", table_name="membership")
    op.drop_index("ix_membership_trip_id", table_name="membership")
    op.drop_table("membership")
    op.drop_index("ix_trip_owner_id", table_name="trip")
    op.drop_table("trip")
    op.drop_table("user")
