"""Initial fee ledger schema and seed SuperAdmin

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from fee_ledger.core.auth.password import hash_password

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"], unique=False)

    # Audit logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("enrollment_id", sa.BigInteger(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"], unique=False)
    op.create_index("ix_audit_logs_enrollment_id", "audit_logs", ["enrollment_id"], unique=False)
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)

    # Enrollment context (owned by school administration, read by the fee engine)
    op.create_table(
        "schools",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_schools"),
    )

    op.create_table(
        "academic_years",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False, server_default="false"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_academic_years"),
        sa.ForeignKeyConstraint(
            ["school_id"], ["schools.id"], name="fk_academic_years_school_id_schools"
        ),
    )
    op.create_index("ix_academic_years_school_id", "academic_years", ["school_id"])

    op.create_table(
        "grades",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_grades"),
    )

    op.create_table(
        "classrooms",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("grade_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_classrooms"),
        sa.ForeignKeyConstraint(
            ["grade_id"], ["grades.id"], name="fk_classrooms_grade_id_grades"
        ),
    )
    op.create_index("ix_classrooms_grade_id", "classrooms", ["grade_id"])

    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("government_id", sa.String(50), nullable=True),
        sa.Column("guardian_name", sa.String(200), nullable=True),
        sa.Column("guardian_phone", sa.String(30), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_students"),
    )

    op.create_table(
        "enrollments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.BigInteger(), nullable=False),
        sa.Column("school_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year_id", sa.BigInteger(), nullable=False),
        sa.Column("grade_id", sa.BigInteger(), nullable=False),
        sa.Column("classroom_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_enrollments"),
        sa.ForeignKeyConstraint(
            ["student_id"], ["students.id"], name="fk_enrollments_student_id_students"
        ),
        sa.ForeignKeyConstraint(
            ["school_id"], ["schools.id"], name="fk_enrollments_school_id_schools"
        ),
        sa.ForeignKeyConstraint(
            ["academic_year_id"],
            ["academic_years.id"],
            name="fk_enrollments_academic_year_id_academic_years",
        ),
        sa.ForeignKeyConstraint(
            ["grade_id"], ["grades.id"], name="fk_enrollments_grade_id_grades"
        ),
        sa.ForeignKeyConstraint(
            ["classroom_id"], ["classrooms.id"], name="fk_enrollments_classroom_id_classrooms"
        ),
    )
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"])
    op.create_index("ix_enrollments_school_id", "enrollments", ["school_id"])
    op.create_index("ix_enrollments_academic_year_id", "enrollments", ["academic_year_id"])

    # Installments
    op.create_table(
        "fee_installments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("enrollment_id", sa.BigInteger(), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("amount_due", sa.Numeric(15, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_fee_installments"),
        sa.ForeignKeyConstraint(
            ["enrollment_id"],
            ["enrollments.id"],
            name="fk_fee_installments_enrollment_id_enrollments",
        ),
        sa.CheckConstraint("amount_due > 0", name="ck_fee_installments_amount_due_positive"),
        sa.CheckConstraint(
            "amount_paid >= 0", name="ck_fee_installments_amount_paid_non_negative"
        ),
    )
    op.create_index("ix_fee_installments_enrollment_id", "fee_installments", ["enrollment_id"])
    op.create_index("ix_fee_installments_due_date", "fee_installments", ["due_date"])

    # Payments
    op.create_table(
        "payment_methods",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_payment_methods"),
        sa.UniqueConstraint("name", name="uq_payment_methods_name"),
    )

    op.create_table(
        "student_fee_payments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("fee_installment_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("payment_method_id", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id", name="pk_student_fee_payments"),
        sa.ForeignKeyConstraint(
            ["fee_installment_id"],
            ["fee_installments.id"],
            name="fk_student_fee_payments_fee_installment_id_fee_installments",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["payment_method_id"],
            ["payment_methods.id"],
            name="fk_student_fee_payments_payment_method_id_payment_methods",
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_student_fee_payments_created_by_id_users"
        ),
        sa.CheckConstraint("amount > 0", name="ck_student_fee_payments_amount_positive"),
    )
    op.create_index(
        "ix_student_fee_payments_fee_installment_id",
        "student_fee_payments",
        ["fee_installment_id"],
    )

    # Ledger
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("enrollment_id", sa.BigInteger(), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("balance_after", sa.Numeric(15, 2), nullable=False),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("created_by_id", sa.BigInteger(), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("deletion_reason", sa.Text(), nullable=True),
        sa.Column("deleted_by_id", sa.BigInteger(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_entries"),
        sa.ForeignKeyConstraint(
            ["enrollment_id"], ["enrollments.id"], name="fk_ledger_entries_enrollment_id_enrollments"
        ),
        sa.ForeignKeyConstraint(
            ["created_by_id"], ["users.id"], name="fk_ledger_entries_created_by_id_users"
        ),
        sa.ForeignKeyConstraint(
            ["deleted_by_id"], ["users.id"], name="fk_ledger_entries_deleted_by_id_users"
        ),
        sa.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )
    op.create_index("ix_ledger_entries_enrollment_id", "ledger_entries", ["enrollment_id"])
    op.create_index("ix_ledger_entries_transaction_type", "ledger_entries", ["transaction_type"])
    op.create_index("ix_ledger_entries_payment_method", "ledger_entries", ["payment_method"])
    op.create_index(
        "ix_ledger_entries_chain",
        "ledger_entries",
        ["enrollment_id", "deleted", "transaction_date", "id"],
    )

    op.create_table(
        "ledger_deletions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("ledger_entry_id", sa.BigInteger(), nullable=False),
        sa.Column("enrollment_id", sa.BigInteger(), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("balance_before", sa.Numeric(15, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(15, 2), nullable=False),
        sa.Column("deletion_reason", sa.Text(), nullable=False),
        sa.Column("original_created_by_id", sa.BigInteger(), nullable=True),
        sa.Column("original_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by_id", sa.BigInteger(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_deletions"),
        sa.ForeignKeyConstraint(
            ["ledger_entry_id"],
            ["ledger_entries.id"],
            name="fk_ledger_deletions_ledger_entry_id_ledger_entries",
        ),
        sa.ForeignKeyConstraint(
            ["enrollment_id"],
            ["enrollments.id"],
            name="fk_ledger_deletions_enrollment_id_enrollments",
        ),
        sa.ForeignKeyConstraint(
            ["deleted_by_id"], ["users.id"], name="fk_ledger_deletions_deleted_by_id_users"
        ),
        sa.UniqueConstraint("ledger_entry_id", name="uq_ledger_deletions_ledger_entry_id"),
    )
    op.create_index("ix_ledger_deletions_enrollment_id", "ledger_deletions", ["enrollment_id"])
    op.create_index("ix_ledger_deletions_deleted_by_id", "ledger_deletions", ["deleted_by_id"])
    op.create_index("ix_ledger_deletions_created_at", "ledger_deletions", ["created_at"])

    # Default payment methods
    op.execute(
        sa.text(
            """
            INSERT INTO payment_methods (name, display_name, is_active, created_at, updated_at)
            VALUES
                ('cash', 'Cash', true, NOW(), NOW()),
                ('bank_transfer', 'Bank Transfer', true, NOW(), NOW()),
                ('mobile_money', 'Mobile Money', true, NOW(), NOW())
            """
        )
    )

    # Seed first SuperAdmin user
    # Password: Admin123! (change in production!)
    op.execute(
        sa.text(
            """
            INSERT INTO users (email, password_hash, full_name, role, is_active, created_at, updated_at)
            VALUES (
                'admin@school.com',
                :password_hash,
                'System Administrator',
                'SuperAdmin',
                true,
                NOW(),
                NOW()
            )
            """
        ).bindparams(password_hash=hash_password("Admin123!"))
    )


def downgrade() -> None:
    op.drop_table("ledger_deletions")
    op.drop_table("ledger_entries")
    op.drop_table("student_fee_payments")
    op.drop_table("payment_methods")
    op.drop_table("fee_installments")
    op.drop_table("enrollments")
    op.drop_table("students")
    op.drop_table("classrooms")
    op.drop_table("grades")
    op.drop_table("academic_years")
    op.drop_table("schools")
    op.drop_table("audit_logs")
    op.drop_table("users")
