# backend/alembic/versions/001_booking_engine.py
"""Booking engine schema - players, credits, slots, bookings, schedules

Revision ID: 001_booking_engine
Revises:
Create Date: 2026-02-16 00:00:00.000000

Creates every table of the booking engine in its final form. The slot
catalog itself is data, seeded by CapacityPoolService.sync_catalog() at
application startup.
"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op
from icetime.models.types import StringArrayType, UTCDateTime

# revision identifiers, used by Alembic.
revision: str = "001_booking_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the booking engine schema."""
    print("Creating booking engine schema...")

    op.create_table(
        "players",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("age_category", sa.String(20), nullable=False),
        sa.Column("created_at", UTCDateTime(), nullable=False),
    )
    op.create_index("ix_players_account_id", "players", ["account_id"])
    op.create_index("ix_players_account_category", "players", ["account_id", "age_category"])

    # Credit ledger
    op.create_table(
        "credit_accounts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("total_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.CheckConstraint("total_credits >= 0", name="ck_credit_accounts_non_negative"),
    )

    op.create_table(
        "credit_batches",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "account_id", sa.String(64), sa.ForeignKey("credit_accounts.id"), nullable=False
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("remaining", sa.Integer(), nullable=False),
        sa.Column("price_paid_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source", sa.String(20), nullable=False, server_default="purchase"),
        sa.Column("package_type", sa.String(20), nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("purchased_at", UTCDateTime(), nullable=False),
        sa.Column("expires_at", UTCDateTime(), nullable=False),
        sa.Column("source_booking_id", sa.String(26), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_credit_batches_quantity_positive"),
        sa.CheckConstraint(
            "remaining >= 0 AND remaining <= quantity", name="ck_credit_batches_remaining_range"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'exhausted', 'expired')", name="ck_credit_batches_status"
        ),
        sa.CheckConstraint(
            "source IN ('purchase', 'refund', 'adjustment')", name="ck_credit_batches_source"
        ),
    )
    op.create_index("ix_credit_batches_account_id", "credit_batches", ["account_id"])
    op.create_index(
        "ix_credit_batches_account_status_expiry",
        "credit_batches",
        ["account_id", "status", "expires_at"],
    )

    op.create_table(
        "credit_consumptions",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "account_id", sa.String(64), sa.ForeignKey("credit_accounts.id"), nullable=False
        ),
        sa.Column("batch_id", sa.String(26), sa.ForeignKey("credit_batches.id"), nullable=False),
        sa.Column("booking_id", sa.String(26), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("refunded_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_credit_consumptions_quantity_positive"),
        sa.CheckConstraint(
            "refunded_quantity >= 0 AND refunded_quantity <= quantity",
            name="ck_credit_consumptions_refund_range",
        ),
    )
    op.create_index("ix_credit_consumptions_account_id", "credit_consumptions", ["account_id"])
    op.create_index("ix_credit_consumptions_booking_id", "credit_consumptions", ["booking_id"])

    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "account_id", sa.String(64), sa.ForeignKey("credit_accounts.id"), nullable=False
        ),
        sa.Column("entry_type", sa.String(20), nullable=False),
        sa.Column(
            "quantity", sa.Integer(), nullable=False, comment="Signed change to the usable balance"
        ),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.String(26), sa.ForeignKey("credit_batches.id"), nullable=True),
        sa.Column("booking_id", sa.String(26), nullable=True),
        sa.Column("actor", sa.String(64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.CheckConstraint(
            "entry_type IN ('purchase', 'consume', 'refund', 'adjustment', 'expire')",
            name="ck_credit_ledger_entry_type",
        ),
    )
    op.create_index("ix_credit_ledger_entries_booking_id", "credit_ledger_entries", ["booking_id"])
    op.create_index(
        "ix_credit_ledger_account_created", "credit_ledger_entries", ["account_id", "created_at"]
    )

    # Slot catalog and per-date occupancy
    op.create_table(
        "time_slots",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("pool", sa.String(20), nullable=False),
        sa.Column("day_of_week", sa.String(10), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, comment="Order within (pool, day)"),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("eligible_categories", StringArrayType(), nullable=True),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("pool", "day_of_week", "start_time", name="uq_time_slots_key"),
        sa.UniqueConstraint("pool", "day_of_week", "position", name="uq_time_slots_position"),
        sa.CheckConstraint("capacity > 0", name="ck_time_slots_capacity_positive"),
        sa.CheckConstraint("pool IN ('group', 'shared', 'sunday')", name="ck_time_slots_pool"),
    )

    op.create_table(
        "slot_occupancy",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("time_slot_id", sa.String(26), sa.ForeignKey("time_slots.id"), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("booked_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.UniqueConstraint("time_slot_id", "session_date", name="uq_slot_occupancy_slot_date"),
        sa.CheckConstraint("booked_count >= 0", name="ck_slot_occupancy_non_negative"),
    )

    # Pairing
    op.create_table(
        "unpaired_players",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "player_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False, unique=True
        ),
        sa.Column("age_category", sa.String(20), nullable=False),
        sa.Column("preferred_days", StringArrayType(), nullable=False),
        sa.Column("preferred_times", StringArrayType(), nullable=False, comment="HH:MM slot starts"),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column("waiting_since", UTCDateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('waiting', 'paired', 'inactive')", name="ck_unpaired_players_status"
        ),
    )
    op.create_index(
        "ix_unpaired_players_status_category", "unpaired_players", ["status", "age_category"]
    )

    op.create_table(
        "pairings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("player_1_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("player_2_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("age_category", sa.String(20), nullable=False),
        sa.Column("day_of_week", sa.String(10), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("time_slot_id", sa.String(26), sa.ForeignKey("time_slots.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("paired_at", UTCDateTime(), nullable=False),
        sa.Column("paired_by", sa.String(64), nullable=True),
        sa.Column("dissolved_at", UTCDateTime(), nullable=True),
        sa.Column("dissolved_by", sa.String(64), nullable=True),
        sa.Column("dissolution_reason", sa.Text(), nullable=True),
        sa.CheckConstraint("status IN ('active', 'dissolved')", name="ck_pairings_status"),
        sa.CheckConstraint("player_1_id <> player_2_id", name="ck_pairings_distinct_players"),
    )
    op.create_index("ix_pairings_slot_status", "pairings", ["time_slot_id", "status"])

    # Recurring schedules
    op.create_table(
        "recurring_schedules",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("player_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("program_type", sa.String(20), nullable=False),
        sa.Column("day_of_week", sa.String(10), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("paused_reason", sa.String(32), nullable=True),
        sa.Column("next_booking_date", sa.Date(), nullable=False),
        sa.Column("last_booked_date", sa.Date(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.CheckConstraint(
            "paused_reason IS NULL OR paused_reason IN "
            "('insufficient_credits', 'user_paused', 'slot_unavailable')",
            name="ck_recurring_schedules_paused_reason",
        ),
    )
    op.create_index("ix_recurring_schedules_account_id", "recurring_schedules", ["account_id"])
    op.create_index(
        "ix_recurring_schedules_due", "recurring_schedules", ["is_active", "next_booking_date"]
    )
    op.create_index(
        "ix_recurring_schedules_player", "recurring_schedules", ["player_id", "program_type"]
    )

    # Bookings (single table, one program per row)
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("player_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("program_type", sa.String(20), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("time_slot_id", sa.String(26), sa.ForeignKey("time_slots.id"), nullable=False),
        sa.Column(
            "secondary_time_slot_id", sa.String(26), sa.ForeignKey("time_slots.id"), nullable=True
        ),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_hours", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("holds_seat", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("credit_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="booked"),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("confirmed_at", UTCDateTime(), nullable=True),
        sa.Column("completed_at", UTCDateTime(), nullable=True),
        sa.Column("cancelled_at", UTCDateTime(), nullable=True),
        sa.Column("cancelled_by", sa.String(64), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "recurring_schedule_id",
            sa.String(26),
            sa.ForeignKey("recurring_schedules.id"),
            nullable=True,
        ),
        sa.Column("pairing_id", sa.String(26), sa.ForeignKey("pairings.id"), nullable=True),
        sa.Column(
            "rescheduled_from_booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "status IN ('provisional', 'booked', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        sa.CheckConstraint(
            "program_type IN ('group', 'private', 'semi_private', 'sunday')",
            name="ck_bookings_program_type",
        ),
        sa.CheckConstraint("duration_hours IN (1, 2)", name="ck_bookings_duration"),
        sa.CheckConstraint("credit_cost >= 0", name="ck_bookings_credit_cost_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_account_id", "bookings", ["account_id"])
    op.create_index("ix_bookings_session_date", "bookings", ["session_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_recurring_schedule_id", "bookings", ["recurring_schedule_id"])
    op.create_index(
        "ix_bookings_slot_date_status", "bookings", ["time_slot_id", "session_date", "status"]
    )
    op.create_index("ix_bookings_player_date", "bookings", ["player_id", "session_date"])

    # Schedule change requests
    op.create_table(
        "schedule_changes",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("player_id", sa.String(26), sa.ForeignKey("players.id"), nullable=False),
        sa.Column("account_id", sa.String(64), nullable=False),
        sa.Column("program_type", sa.String(20), nullable=False),
        sa.Column("change_type", sa.String(20), nullable=False),
        sa.Column("one_time_kind", sa.String(10), nullable=True),
        sa.Column("original_day", sa.String(10), nullable=False),
        sa.Column("original_time", sa.Time(), nullable=False),
        sa.Column("new_day", sa.String(10), nullable=True),
        sa.Column("new_time", sa.Time(), nullable=True),
        sa.Column(
            "specific_date", sa.Date(), nullable=True, comment="Occurrence affected by a one-time change"
        ),
        sa.Column(
            "replacement_date", sa.Date(), nullable=True, comment="Target date of a one-time swap"
        ),
        sa.Column(
            "effective_date", sa.Date(), nullable=True, comment="First date of a permanent change"
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("original_booking_id", sa.String(26), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("new_booking_id", sa.String(26), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("approved_at", UTCDateTime(), nullable=True),
        sa.Column("applied_at", UTCDateTime(), nullable=True),
        sa.Column("cancelled_at", UTCDateTime(), nullable=True),
        sa.Column("rejected_at", UTCDateTime(), nullable=True),
        sa.CheckConstraint(
            "change_type IN ('one_time', 'permanent')", name="ck_schedule_changes_type"
        ),
        sa.CheckConstraint(
            "one_time_kind IS NULL OR one_time_kind IN ('skip', 'swap')",
            name="ck_schedule_changes_one_time_kind",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'applied', 'cancelled', 'rejected')",
            name="ck_schedule_changes_status",
        ),
    )
    op.create_index("ix_schedule_changes_player_id", "schedule_changes", ["player_id"])
    op.create_index("ix_schedule_changes_account_id", "schedule_changes", ["account_id"])
    op.create_index(
        "ix_schedule_changes_player_status", "schedule_changes", ["player_id", "status"]
    )

    print("Booking engine schema created")


def downgrade() -> None:
    """Drop the booking engine schema."""
    print("Dropping booking engine schema...")

    for table in (
        "schedule_changes",
        "bookings",
        "recurring_schedules",
        "pairings",
        "unpaired_players",
        "slot_occupancy",
        "time_slots",
        "credit_ledger_entries",
        "credit_consumptions",
        "credit_batches",
        "credit_accounts",
        "players",
    ):
        op.drop_table(table)
