"""001 – Initial schema: employees, leave ledger, allocation schedule, outbox.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-12 10:30:00.000000+05:30
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

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("employee_status", ["active", "inactive", "relieved"]),
    (
        "employment_term",
        ["full_time", "part_time", "associate", "contract", "probation/internship"],
    ),
    ("leave_category", ["annual", "general", "compensatory_off", "birthday"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled", "withdrawn"]),
    ("half_day_period", ["1st_half", "2nd_half"]),
    ("adjustment_type", ["add", "subtract"]),
    (
        "notification_type",
        [
            "info",
            "approval",
            "alert",
            "leave_submitted",
            "leave_approved",
            "leave_rejected",
            "leave_withdrawn",
            "leave_cancelled",
        ],
    ),
    ("email_status", ["pending", "processing", "sent", "failed", "cancelled"]),
    ("email_priority", ["low", "normal", "high", "urgent"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_code        VARCHAR(20)  NOT NULL UNIQUE,
            full_name            VARCHAR(200) NOT NULL,
            email                VARCHAR(255) NOT NULL UNIQUE,
            status               employee_status NOT NULL DEFAULT 'active',
            employment_term      employment_term,
            date_of_birth        DATE,
            date_of_joining      DATE,
            reporting_manager_id UUID REFERENCES employees(id),
            is_hr_admin          BOOLEAN NOT NULL DEFAULT FALSE,
            comp_off_balance     NUMERIC(6,2) NOT NULL DEFAULT 0,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_status ON employees(status)")
    op.execute("CREATE INDEX ix_employees_employment_term ON employees(employment_term)")

    # ── 2. employment_term_leave_rates ────────────────────────────────────
    op.execute("""
        CREATE TABLE employment_term_leave_rates (
            id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employment_term employment_term NOT NULL UNIQUE,
            leave_rate      NUMERIC(6,2) NOT NULL DEFAULT 0
                            CONSTRAINT ck_term_rate_non_negative CHECK (leave_rate >= 0),
            description     TEXT,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        INSERT INTO employment_term_leave_rates (employment_term, leave_rate, description)
        VALUES
            ('full_time', 1.5, 'Full-time employees'),
            ('part_time', 0, 'Part-time employees'),
            ('associate', 0, 'Associates'),
            ('contract', 0, 'Contract staff'),
            ('probation/internship', 0, 'Probationers and interns')
    """)

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            code              VARCHAR(10)  NOT NULL UNIQUE,
            name              VARCHAR(100) NOT NULL UNIQUE,
            category          leave_category NOT NULL DEFAULT 'general',
            description       TEXT,
            max_days_per_year NUMERIC(6,2),
            carry_forward     BOOLEAN NOT NULL DEFAULT FALSE,
            requires_approval BOOLEAN NOT NULL DEFAULT TRUE,
            deducts_balance   BOOLEAN NOT NULL DEFAULT TRUE,
            is_active         BOOLEAN NOT NULL DEFAULT TRUE,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    # At most one active default bucket.
    op.execute("""
        CREATE UNIQUE INDEX uq_leave_types_active_annual
            ON leave_types(category)
            WHERE category = 'annual' AND is_active
    """)
    op.execute("""
        INSERT INTO leave_types (code, name, category, description, max_days_per_year, deducts_balance)
        VALUES
            ('AL', 'Annual Leave', 'annual', 'Default leave bucket credited monthly.', 18, TRUE),
            ('CO', 'Compensatory Off', 'compensatory_off', 'Time off earned for extra working days.', NULL, TRUE),
            ('BL', 'Birthday Leave', 'birthday', 'One free day on the employee''s birthday.', 1, FALSE)
    """)

    # ── 4. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id       UUID NOT NULL REFERENCES employees(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            year              INTEGER NOT NULL,
            allocated_days    NUMERIC(6,2) NOT NULL DEFAULT 0,
            used_days         NUMERIC(6,2) NOT NULL DEFAULT 0,
            rate_of_leave     NUMERIC(6,2) NOT NULL DEFAULT 0,
            last_allocated_at TIMESTAMPTZ,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (employee_id, leave_type_id, year)
        )
    """)

    # ── 5. leave_applications ─────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applications (
            id                     UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id            UUID NOT NULL REFERENCES employees(id),
            leave_type_id          UUID NOT NULL REFERENCES leave_types(id),
            start_date             DATE NOT NULL,
            end_date               DATE NOT NULL,
            days_count             NUMERIC(6,2) NOT NULL,
            is_half_day            BOOLEAN NOT NULL DEFAULT FALSE,
            half_day_period        half_day_period,
            reason                 TEXT,
            status                 leave_status NOT NULL DEFAULT 'pending',
            lop_days               NUMERIC(6,2) NOT NULL DEFAULT 0,
            sandwich_deducted_days NUMERIC(6,2),
            sandwich_reason        TEXT,
            is_sandwich_leave      BOOLEAN NOT NULL DEFAULT FALSE,
            approved_by            UUID REFERENCES employees(id),
            approved_at            TIMESTAMPTZ,
            reviewer_remarks       TEXT,
            withdrawn_by           UUID REFERENCES employees(id),
            withdrawal_reason      TEXT,
            withdrawn_at           TIMESTAMPTZ,
            applied_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_date_order CHECK (end_date >= start_date),
            CONSTRAINT ck_leave_lop_range CHECK (lop_days >= 0 AND lop_days <= days_count),
            CONSTRAINT ck_leave_half_day_period CHECK (
                (is_half_day AND half_day_period IS NOT NULL AND start_date = end_date)
                OR (NOT is_half_day AND half_day_period IS NULL)
            )
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_applications_employee_dates "
        "ON leave_applications(employee_id, start_date)"
    )
    op.execute("CREATE INDEX ix_leave_applications_status ON leave_applications(status)")

    # ── 6. leave_balance_adjustments ──────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balance_adjustments (
            id                 UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id        UUID NOT NULL REFERENCES employees(id),
            leave_balance_id   UUID NOT NULL REFERENCES leave_balances(id) ON DELETE CASCADE,
            adjustment_type    adjustment_type NOT NULL,
            amount             NUMERIC(6,2) NOT NULL
                               CONSTRAINT ck_adjustment_amount_positive CHECK (amount > 0),
            reason             TEXT NOT NULL,
            previous_allocated NUMERIC(6,2) NOT NULL,
            new_allocated      NUMERIC(6,2) NOT NULL,
            adjusted_by        UUID REFERENCES employees(id),
            allocation_slot    TIMESTAMPTZ,
            created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_adjustment_slot UNIQUE (leave_balance_id, allocation_slot)
        )
    """)

    # ── 7. leave_withdrawal_logs ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_withdrawal_logs (
            id                     UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            leave_application_id   UUID NOT NULL REFERENCES leave_applications(id) ON DELETE CASCADE,
            withdrawn_by           UUID REFERENCES employees(id),
            reason                 TEXT,
            previous_status        leave_status NOT NULL,
            restored_days          NUMERIC(6,2) NOT NULL DEFAULT 0,
            sibling_application_id UUID REFERENCES leave_applications(id),
            sibling_restored_days  NUMERIC(6,2) NOT NULL DEFAULT 0,
            withdrawn_at           TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 8. leave_cron_settings ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_cron_settings (
            id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            cron_schedule VARCHAR(100) NOT NULL,
            end_date      DATE NOT NULL,
            is_active     BOOLEAN NOT NULL DEFAULT TRUE,
            last_run_at   TIMESTAMPTZ,
            next_run_at   TIMESTAMPTZ,
            updated_by    UUID REFERENCES employees(id),
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # ── 9. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            recipient_id UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            type         notification_type NOT NULL DEFAULT 'info',
            title        VARCHAR(200) NOT NULL,
            message      TEXT NOT NULL,
            data         JSONB,
            entity_type  VARCHAR(50),
            entity_id    UUID,
            is_read      BOOLEAN NOT NULL DEFAULT FALSE,
            read_at      TIMESTAMPTZ,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_notifications_recipient_unread "
        "ON notifications(recipient_id, is_read)"
    )

    # ── 10. email_queue (outbox) ──────────────────────────────────────────
    op.execute("""
        CREATE TABLE email_queue (
            id            UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            module_type   VARCHAR(50)  NOT NULL,
            reference_id  UUID NOT NULL,
            email_type    VARCHAR(100) NOT NULL,
            subject       VARCHAR(300) NOT NULL,
            priority      email_priority NOT NULL DEFAULT 'normal',
            recipients    JSONB NOT NULL,
            email_data    JSONB NOT NULL,
            status        email_status NOT NULL DEFAULT 'pending',
            scheduled_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            processed_at  TIMESTAMPTZ,
            retry_count   INTEGER NOT NULL DEFAULT 0,
            max_retries   INTEGER NOT NULL DEFAULT 3,
            error_message TEXT,
            created_by    UUID REFERENCES employees(id),
            created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute(
        "CREATE INDEX ix_email_queue_status_scheduled ON email_queue(status, scheduled_at)"
    )
    op.execute(
        "CREATE INDEX ix_email_queue_reference ON email_queue(module_type, reference_id)"
    )

    # ── 11. audit_trail ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_id    UUID REFERENCES employees(id),
            action      VARCHAR(50) NOT NULL,
            entity_type VARCHAR(50) NOT NULL,
            entity_id   UUID NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "email_queue",
        "notifications",
        "leave_cron_settings",
        "leave_withdrawal_logs",
        "leave_balance_adjustments",
        "leave_applications",
        "leave_balances",
        "leave_types",
        "employment_term_leave_rates",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
