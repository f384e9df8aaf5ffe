"""001 – Leave engine schema: balances, history, requests, calendar, holidays, delegations.

Revision ID: 001_leave_engine_schema
Revises:
Create Date: 2026-10-12 09:30:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_leave_engine_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Enum columns are stored as VARCHAR(32) (non-native enums on the ORM side)
DAYS = "NUMERIC(7, 2) NOT NULL DEFAULT 0"


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── 1. leave_balances ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_balances (
            id                      UUID PRIMARY KEY,
            employee_id             UUID NOT NULL,
            subsidiary_id           UUID,
            leave_year              INTEGER NOT NULL,
            leave_type              VARCHAR(32) NOT NULL,
            annual_entitlement      {DAYS},
            prorated_entitlement    {DAYS},
            accrued_to_date         {DAYS},
            accrual_rate            {DAYS},
            last_accrual_month      INTEGER,
            carried_over            {DAYS},
            carried_over_used       {DAYS},
            carried_over_expired    {DAYS},
            carry_over_expiry       DATE,
            carried_over_from_year  INTEGER,
            taken                   {DAYS},
            pending                 {DAYS},
            available               {DAYS},
            advance_taken           {DAYS},
            max_advance             {DAYS},
            encashed                {DAYS},
            earned                  {DAYS},
            version                 INTEGER NOT NULL,
            created_at              TIMESTAMPTZ DEFAULT NOW(),
            updated_at              TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_year, leave_type)
        )
    """)
    op.create_index("ix_leave_balances_employee_id", "leave_balances", ["employee_id"])

    # ── 2. leave_balance_history (append-only) ────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_balance_history (
            id                  UUID PRIMARY KEY,
            employee_id         UUID NOT NULL,
            leave_year          INTEGER NOT NULL,
            leave_type          VARCHAR(32) NOT NULL,
            transaction_type    VARCHAR(32) NOT NULL,
            balance_before      {DAYS},
            adjustment          {DAYS},
            balance_after       {DAYS},
            reference_type      VARCHAR(40),
            reference_id        VARCHAR(64),
            description         TEXT NOT NULL DEFAULT '',
            accrual_period      VARCHAR(7),
            created_by          VARCHAR(64),
            created_at          TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.create_index(
        "ix_balance_history_key", "leave_balance_history",
        ["employee_id", "leave_year", "leave_type"],
    )

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY,
            request_number      VARCHAR(48) NOT NULL UNIQUE,
            subsidiary_id       UUID,
            employee_id         UUID NOT NULL,
            employee_number     VARCHAR(32) NOT NULL,
            employee_name       VARCHAR(200) NOT NULL,
            department_id       UUID,
            leave_type          VARCHAR(32) NOT NULL,
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            leave_year          INTEGER NOT NULL,
            day_configs         JSONB NOT NULL DEFAULT '[]',
            total_working_days  {DAYS},
            reason              TEXT NOT NULL,
            priority            VARCHAR(32) NOT NULL DEFAULT 'normal',
            status              VARCHAR(32) NOT NULL,
            status_history      JSONB NOT NULL DEFAULT '[]',
            approval_chain      JSONB NOT NULL DEFAULT '{{}}',
            approvals           JSONB NOT NULL DEFAULT '[]',
            balance_impact      JSONB,
            delegation          JSONB,
            emergency_contact   JSONB,
            return_to_work      JSONB,
            cancellation_reason TEXT,
            submitted_at        TIMESTAMPTZ,
            approved_at         TIMESTAMPTZ,
            rejected_at         TIMESTAMPTZ,
            cancelled_at        TIMESTAMPTZ,
            created_by          UUID,
            updated_by          UUID,
            version             INTEGER NOT NULL,
            created_at          TIMESTAMPTZ DEFAULT NOW(),
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_requests_dates CHECK (end_date >= start_date)
        )
    """)
    op.create_index(
        "ix_leave_requests_employee_status", "leave_requests", ["employee_id", "status"],
    )

    # ── 4. team_calendar_entries (derived) ────────────────────────────────
    op.execute(f"""
        CREATE TABLE team_calendar_entries (
            id              UUID PRIMARY KEY,
            request_id      UUID NOT NULL REFERENCES leave_requests(id) ON DELETE CASCADE,
            employee_id     UUID NOT NULL,
            employee_name   VARCHAR(200) NOT NULL,
            department_id   UUID,
            subsidiary_id   UUID,
            leave_type      VARCHAR(32) NOT NULL,
            leave_date      DATE NOT NULL,
            day_type        VARCHAR(32) NOT NULL,
            day_value       {DAYS},
            status          VARCHAR(32) NOT NULL
        )
    """)
    op.create_index("ix_team_calendar_entries_request_id", "team_calendar_entries", ["request_id"])
    op.create_index(
        "ix_team_calendar_department_date", "team_calendar_entries",
        ["department_id", "leave_date"],
    )

    # ── 5. public_holidays ────────────────────────────────────────────────
    op.create_table(
        "public_holidays",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("subsidiary_id", sa.Uuid),
        sa.Column("holiday_date", sa.Date, nullable=False),
        sa.Column("year", sa.Integer, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_recurring", sa.Boolean, server_default=sa.false()),
    )
    op.create_index(
        "ix_public_holidays_subsidiary_year", "public_holidays", ["subsidiary_id", "year"],
    )

    # ── 6. approval_delegations ───────────────────────────────────────────
    op.execute("""
        CREATE TABLE approval_delegations (
            id              UUID PRIMARY KEY,
            delegator_id    UUID NOT NULL,
            delegate_id     UUID NOT NULL,
            is_active       BOOLEAN DEFAULT TRUE,
            start_date      DATE NOT NULL,
            end_date        DATE NOT NULL,
            leave_types     JSONB,
            department_ids  JSONB,
            max_days        NUMERIC(7, 2),
            reason          TEXT,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.create_index("ix_approval_delegations_delegator_id", "approval_delegations", ["delegator_id"])
    op.create_index("ix_approval_delegations_delegate_id", "approval_delegations", ["delegate_id"])


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "approval_delegations",
        "public_holidays",
        "team_calendar_entries",
        "leave_requests",
        "leave_balance_history",
        "leave_balances",
    ]
    for table in tables:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
