"""initial cashflow schema

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None

RHYTHM = ("monthly", "quarterly", "semiannual", "annual")
DIRECTION = ("Incoming", "Outgoing")
CATEGORY = ("Standard", "Fixkosten", "Lohn", "Simulation", "Manual")
SOURCE_KIND = ("booking", "fixed_cost", "salary", "simulation")


def _timestamps():
    return (
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def upgrade():
    op.create_table(
        "fixed_costs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("rhythm", sa.Enum(*RHYTHM, name="rhythm"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_fixed_cost_user_name"),
        sa.CheckConstraint("amount_cents >= 0", name="ck_fixed_cost_amount_positive"),
        sa.CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_fixed_cost_end_after_start",
        ),
    )

    op.create_table(
        "occurrence_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source_kind", sa.Enum(*SOURCE_KIND, name="sourcekind"), nullable=False),
        sa.Column("definition_id", sa.Integer(), nullable=False),
        sa.Column("original_date", sa.Date(), nullable=False),
        sa.Column("new_date", sa.Date()),
        sa.Column("new_amount_cents", sa.Integer()),
        sa.Column("is_skipped", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint(
            "source_kind",
            "definition_id",
            "original_date",
            name="uq_override_definition_original_date",
        ),
        sa.CheckConstraint(
            "new_amount_cents IS NULL OR new_amount_cents >= 0",
            name="ck_override_amount_positive",
        ),
    )

    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=120), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "salaries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "employee_id",
            sa.Integer(),
            sa.ForeignKey("employees.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date()),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_salary_amount_positive"),
    )
    op.create_index("ix_salaries_employee_start", "salaries", ["employee_id", "start_date"])

    op.create_table(
        "simulations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("details", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("end_date", sa.Date()),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("direction", sa.Enum(*DIRECTION, name="direction"), nullable=False),
        sa.Column("recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("rhythm", sa.Enum(*RHYTHM, name="rhythm")),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_simulation_amount_positive"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("details", sa.String(length=300), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("direction", sa.Enum(*DIRECTION, name="direction"), nullable=False),
        sa.Column(
            "category",
            sa.Enum(*CATEGORY, name="transactioncategory"),
            nullable=False,
            server_default="Standard",
        ),
        sa.Column("modified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_simulation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expected", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_bookings_amount_positive"),
    )
    op.create_index("ix_bookings_user_date", "bookings", ["user_id", "date"])

    op.create_table(
        "current_balance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )

    op.create_table(
        "daily_balance_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False, unique=True),
        sa.Column("balance_cents", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "scenarios",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("simulation_ids", sa.JSON(), nullable=False),
        sa.Column("projection_months", sa.Integer(), nullable=False, server_default="12"),
        *_timestamps(),
        sa.CheckConstraint(
            "projection_months > 0", name="ck_scenario_projection_months_positive"
        ),
    )

    op.create_table(
        "revenue_targets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("year", sa.Integer(), nullable=False, unique=True),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column("updated_by", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("target_cents >= 0", name="ck_revenue_target_positive"),
    )


def downgrade():
    op.drop_table("revenue_targets")
    op.drop_table("scenarios")
    op.drop_table("daily_balance_snapshots")
    op.drop_table("current_balance")
    op.drop_index("ix_bookings_user_date", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("simulations")
    op.drop_index("ix_salaries_employee_start", table_name="salaries")
    op.drop_table("salaries")
    op.drop_table("employees")
    op.drop_table("occurrence_overrides")
    op.drop_table("fixed_costs")
