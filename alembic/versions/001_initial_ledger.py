"""001 - Initial ledger tables

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _money(name: str, nullable: bool = False, zero_default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(15, 2),
        nullable=nullable,
        server_default="0.00" if zero_default else None,
    )


def upgrade() -> None:
    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_school_id", "audit_logs", ["school_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Document sequences
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False),
        sa.Column("period", sa.String(10), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "school_id", "prefix", "period", name="uq_document_sequence_school_prefix_period"
        ),
    )

    # Students
    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("school_id", "student_number", name="uq_students_school_number"),
    )
    op.create_index("ix_students_school_id", "students", ["school_id"])

    # Fee structures and obligations
    op.create_table(
        "fee_structures",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("category_code", sa.String(50), nullable=False),
        _money("amount"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_fee_structures_school_id", "fee_structures", ["school_id"])

    op.create_table(
        "obligations",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("fee_structure_id", sa.BigInteger(), nullable=True),
        sa.Column("description", sa.String(200), nullable=False),
        sa.Column("category_code", sa.String(50), nullable=False),
        _money("original_amount"),
        _money("discount_amount", zero_default=True),
        _money("additional_charges", zero_default=True),
        _money("final_amount"),
        _money("amount_paid", zero_default=True),
        _money("balance"),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("last_payment_date", sa.Date(), nullable=True),
        sa.Column("is_overdue", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("overdue_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_type", sa.String(50), nullable=True),
        sa.Column("discount_reason", sa.Text(), nullable=True),
        sa.Column("approved_by_id", sa.BigInteger(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.ForeignKeyConstraint(["fee_structure_id"], ["fee_structures.id"]),
        sa.UniqueConstraint(
            "student_id", "fee_structure_id", name="uq_obligations_student_structure"
        ),
        sa.CheckConstraint("balance >= 0", name="ck_obligations_balance_non_negative"),
    )
    op.create_index("ix_obligations_school_id", "obligations", ["school_id"])
    op.create_index("ix_obligations_student_id", "obligations", ["student_id"])
    op.create_index("ix_obligations_due_date", "obligations", ["due_date"])
    op.create_index("ix_obligations_status", "obligations", ["status"])

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_reference", sa.String(50), nullable=False),
        sa.Column("receipt_number", sa.String(50), nullable=False),
        sa.Column("transaction_reference", sa.String(100), nullable=True),
        _money("amount"),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_by_id", sa.BigInteger(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_by_id", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
        sa.UniqueConstraint("school_id", "payment_reference", name="uq_payments_school_reference"),
        sa.UniqueConstraint("school_id", "receipt_number", name="uq_payments_school_receipt"),
        sa.UniqueConstraint(
            "school_id", "transaction_reference", name="uq_payments_school_transaction_reference"
        ),
    )
    op.create_index("ix_payments_school_id", "payments", ["school_id"])
    op.create_index("ix_payments_student_id", "payments", ["student_id"])
    op.create_index("ix_payments_payment_status", "payments", ["payment_status"])

    # Payment plans
    op.create_table(
        "payment_plans",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("plan_name", sa.String(200), nullable=False),
        _money("total_amount"),
        _money("down_payment", zero_default=True),
        _money("remaining_amount"),
        sa.Column("number_of_installments", sa.Integer(), nullable=False),
        _money("installment_amount"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="monthly"),
        sa.Column("grace_period_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _money("amount_paid", zero_default=True),
        _money("balance"),
        sa.Column("installments_paid", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("installments_overdue", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        sa.Column("terms_and_conditions", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"]),
    )
    op.create_index("ix_payment_plans_school_id", "payment_plans", ["school_id"])
    op.create_index("ix_payment_plans_student_id", "payment_plans", ["student_id"])
    op.create_index("ix_payment_plans_status", "payment_plans", ["status"])

    op.create_table(
        "payment_plan_installments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_plan_id", sa.BigInteger(), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        _money("amount"),
        _money("amount_paid", zero_default=True),
        _money("balance"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("grace_period_end", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("days_overdue", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_id", sa.BigInteger(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["payment_plan_id"], ["payment_plans.id"]),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.UniqueConstraint(
            "payment_plan_id", "installment_number", name="uq_installments_plan_number"
        ),
    )
    op.create_index(
        "ix_payment_plan_installments_school_id", "payment_plan_installments", ["school_id"]
    )
    op.create_index(
        "ix_payment_plan_installments_payment_plan_id",
        "payment_plan_installments",
        ["payment_plan_id"],
    )
    op.create_index(
        "ix_payment_plan_installments_due_date", "payment_plan_installments", ["due_date"]
    )
    op.create_index(
        "ix_payment_plan_installments_status", "payment_plan_installments", ["status"]
    )

    # Allocations reference either an obligation or an installment
    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("payment_id", sa.BigInteger(), nullable=False),
        sa.Column("obligation_id", sa.BigInteger(), nullable=True),
        sa.Column("installment_id", sa.BigInteger(), nullable=True),
        _money("allocated_amount"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["obligation_id"], ["obligations.id"]),
        sa.ForeignKeyConstraint(["installment_id"], ["payment_plan_installments.id"]),
        sa.CheckConstraint("allocated_amount > 0", name="ck_payment_allocations_positive"),
        sa.CheckConstraint(
            "(obligation_id IS NULL) <> (installment_id IS NULL)",
            name="ck_payment_allocations_one_target",
        ),
    )
    op.create_index("ix_payment_allocations_school_id", "payment_allocations", ["school_id"])
    op.create_index("ix_payment_allocations_payment_id", "payment_allocations", ["payment_id"])
    op.create_index(
        "ix_payment_allocations_obligation_id", "payment_allocations", ["obligation_id"]
    )
    op.create_index(
        "ix_payment_allocations_installment_id", "payment_allocations", ["installment_id"]
    )

    # Budgets and expenses
    op.create_table(
        "budgets",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("budget_name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("budget_type", sa.String(20), nullable=False, server_default="expense"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        _money("total_budgeted_amount"),
        _money("total_actual_amount", zero_default=True),
        _money("variance_amount", zero_default=True),
        sa.Column("variance_percentage", sa.Numeric(7, 2), nullable=False, server_default="0.00"),
        sa.Column("utilization_rate", sa.Numeric(7, 2), nullable=False, server_default="0.00"),
        sa.Column("actual_spending", sa.JSON(), nullable=True),
        sa.Column("alert_threshold", sa.Numeric(5, 2), nullable=False, server_default="80.00"),
        sa.Column("alerts_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        sa.Column("approved_by_id", sa.BigInteger(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_budgets_school_id", "budgets", ["school_id"])
    op.create_index("ix_budgets_status", "budgets", ["status"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("budget_id", sa.BigInteger(), nullable=True),
        sa.Column("category_code", sa.String(50), nullable=False),
        sa.Column("expense_reference", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("vendor_name", sa.String(200), nullable=True),
        _money("amount"),
        _money("amount_paid", zero_default=True),
        _money("balance"),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("approved_by_id", sa.BigInteger(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["budget_id"], ["budgets.id"]),
        sa.UniqueConstraint("school_id", "expense_reference", name="uq_expenses_school_reference"),
    )
    op.create_index("ix_expenses_school_id", "expenses", ["school_id"])
    op.create_index("ix_expenses_budget_id", "expenses", ["budget_id"])
    op.create_index("ix_expenses_approval_status", "expenses", ["approval_status"])
    op.create_index("ix_expenses_payment_status", "expenses", ["payment_status"])


def downgrade() -> None:
    op.drop_table("expenses")
    op.drop_table("budgets")
    op.drop_table("payment_allocations")
    op.drop_table("payment_plan_installments")
    op.drop_table("payment_plans")
    op.drop_table("payments")
    op.drop_table("obligations")
    op.drop_table("fee_structures")
    op.drop_table("students")
    op.drop_table("document_sequences")
    op.drop_table("audit_logs")
