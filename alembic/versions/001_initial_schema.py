"""001 – Initial schema: directory, leave requests, balances, adjustments, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

LEAVE_TYPES = ("CASUAL", "SICK", "ANNUAL", "MATERNITY", "PATERNITY", "EMERGENCY", "UNPAID")
LEAVE_STATUSES = (
    "PENDING", "PRIMARY_APPROVED", "PRIMARY_REJECTED", "FINAL_APPROVED", "FINAL_REJECTED",
)
LEAVE_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
ADJUSTMENT_TYPES = ("ADD", "DEDUCT", "SET", "CARRY_FORWARD")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    vals = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({vals})"


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')
    # GiST support for the overlap exclusion constraint on (employee_id, daterange)
    op.execute('CREATE EXTENSION IF NOT EXISTS "btree_gist"')

    # ── 1. branches ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE branches (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL UNIQUE,
            code        VARCHAR(20) UNIQUE,
            is_active   BOOLEAN NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. teams ──────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE teams (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            name        VARCHAR(150) NOT NULL,
            branch_id   UUID NOT NULL REFERENCES branches(id),
            CONSTRAINT uq_team_name_branch UNIQUE (name, branch_id)
        )
    """)

    # ── 3. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code  VARCHAR(20)  NOT NULL UNIQUE,
            first_name     VARCHAR(100) NOT NULL,
            last_name      VARCHAR(100) NOT NULL,
            email          VARCHAR(255) NOT NULL UNIQUE,
            branch_id      UUID REFERENCES branches(id),
            team_id        UUID REFERENCES teams(id),
            is_active      BOOLEAN NOT NULL DEFAULT TRUE,
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_branch ON employees(branch_id)")

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_requests (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id            UUID NOT NULL REFERENCES employees(id),
            leave_type             VARCHAR(20) NOT NULL,
            priority               VARCHAR(10) NOT NULL DEFAULT 'MEDIUM',
            start_date             DATE NOT NULL,
            end_date               DATE NOT NULL,
            total_days             INTEGER NOT NULL,
            reason                 TEXT NOT NULL,
            attachment_url         VARCHAR(500),
            status                 VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            current_approval_level INTEGER NOT NULL DEFAULT 1,
            primary_approver_id    UUID,
            primary_approved_at    TIMESTAMPTZ,
            primary_comments       TEXT,
            final_approver_id      UUID,
            final_approved_at      TIMESTAMPTZ,
            final_comments         TEXT,
            rejection_reason       TEXT,
            rejected_by            UUID,
            rejected_at            TIMESTAMPTZ,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            updated_at             TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_requests_total_days CHECK (total_days >= 1),
            CONSTRAINT ck_leave_requests_range CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_requests_type CHECK ({_in_list("leave_type", LEAVE_TYPES)}),
            CONSTRAINT ck_leave_requests_status CHECK ({_in_list("status", LEAVE_STATUSES)}),
            CONSTRAINT ck_leave_requests_priority CHECK ({_in_list("priority", LEAVE_PRIORITIES)})
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_status
            ON leave_requests(employee_id, status)
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_dates
            ON leave_requests(employee_id, start_date, end_date)
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_status_priority
            ON leave_requests(status, priority, created_at)
    """)
    # Active requests of one employee may not share a day
    op.execute("""
        ALTER TABLE leave_requests
            ADD CONSTRAINT ex_leave_requests_no_overlap
            EXCLUDE USING gist (
                employee_id WITH =,
                daterange(start_date, end_date, '[]') WITH &&
            )
            WHERE (status IN ('PENDING', 'PRIMARY_APPROVED', 'FINAL_APPROVED'))
    """)

    # ── 5. leave_balances ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id     UUID NOT NULL REFERENCES employees(id),
            year            INTEGER NOT NULL,
            leave_type      VARCHAR(20) NOT NULL,
            total_allowed   INTEGER NOT NULL DEFAULT 0,
            used            INTEGER NOT NULL DEFAULT 0,
            pending         INTEGER NOT NULL DEFAULT 0,
            carried_forward INTEGER NOT NULL DEFAULT 0,
            available       INTEGER NOT NULL DEFAULT 0,
            version         INTEGER NOT NULL DEFAULT 1,
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, year, leave_type),
            CONSTRAINT ck_leave_balance_allowed CHECK (total_allowed >= 0),
            CONSTRAINT ck_leave_balance_cf CHECK (carried_forward >= 0),
            CONSTRAINT ck_leave_balance_used CHECK (used >= 0),
            CONSTRAINT ck_leave_balance_pending CHECK (pending >= 0),
            CONSTRAINT ck_leave_balance_type CHECK ({_in_list("leave_type", LEAVE_TYPES)})
        )
    """)

    # ── 6. leave_balance_adjustments ──────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_balance_adjustments (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id),
            leave_type       VARCHAR(20) NOT NULL,
            year             INTEGER NOT NULL,
            adjustment_type  VARCHAR(20) NOT NULL,
            days             INTEGER NOT NULL,
            reason           TEXT NOT NULL,
            adjusted_by      UUID,
            leave_request_id UUID REFERENCES leave_requests(id),
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_adjustment_days CHECK (days >= 0),
            CONSTRAINT ck_leave_adjustment_type
                CHECK ({_in_list("adjustment_type", ADJUSTMENT_TYPES)})
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_adjustment_emp_year
            ON leave_balance_adjustments(employee_id, year, leave_type)
    """)

    # ── 7. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id    UUID,
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_audit_trail_entity
            ON audit_trail(entity_type, entity_id)
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id   ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action     ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "leave_balance_adjustments",
        "leave_balances",
        "leave_requests",
        "employees",
        "teams",
        "branches",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    op.execute('DROP EXTENSION IF EXISTS "btree_gist"')
    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
