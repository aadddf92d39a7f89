"""create obe attainment tables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f9a1c7e2b40"
down_revision = None
branch_labels = None
depends_on = None


def _attainment_columns():
    return [
        sa.Column("subject_key", sa.String(length=40), nullable=False),
        sa.Column("outcome_id", sa.Integer(), nullable=False, index=True),
        sa.Column("percentage", sa.Float(), nullable=True),
        sa.Column("level", sa.String(length=20), nullable=False),
        sa.Column("is_attained", sa.Boolean(), nullable=True),
        sa.Column("students_counted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("items_counted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("children_counted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rollup_strategy", sa.String(length=20), nullable=False),
        sa.Column("computed_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "programs",
        sa.Column("program_id", sa.Integer(), primary_key=True),
        sa.Column("program_code", sa.String(length=20), nullable=False, unique=True),
        sa.Column("program_name", sa.String(length=150), nullable=False),
    )
    op.create_table(
        "course_offerings",
        sa.Column("course_offering_id", sa.Integer(), primary_key=True),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("course_code", sa.String(length=20), nullable=False),
        sa.Column("course_name", sa.String(length=150), nullable=False),
        sa.Column("period", sa.String(length=20), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.program_id"]),
        sa.UniqueConstraint("program_id", "course_code", "period", name="unique_offering_period"),
    )
    op.create_table(
        "students",
        sa.Column("student_id", sa.Integer(), primary_key=True),
        sa.Column("register_no", sa.String(length=20), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["program_id"], ["programs.program_id"]),
    )
    op.create_table(
        "outcomes",
        sa.Column("outcome_id", sa.Integer(), primary_key=True),
        sa.Column("tier", sa.Enum("CLO", "PLO", "PEO", name="outcome_tier"), nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=False, index=True),
        sa.Column("code", sa.String(length=20), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("tier", "scope_id", "code", name="unique_tier_scope_code"),
    )
    op.create_table(
        "mapping_edges",
        sa.Column("edge_id", sa.Integer(), primary_key=True),
        sa.Column("child_id", sa.Integer(), nullable=False, index=True),
        sa.Column("parent_id", sa.Integer(), nullable=False, index=True),
        sa.Column("weight", sa.Numeric(10, 4), nullable=False, server_default="1"),
        sa.Column("correlation_level", sa.String(length=10), nullable=True),
        sa.ForeignKeyConstraint(["child_id"], ["outcomes.outcome_id"]),
        sa.ForeignKeyConstraint(["parent_id"], ["outcomes.outcome_id"]),
        sa.UniqueConstraint("child_id", "parent_id", name="unique_child_parent"),
    )
    op.create_table(
        "assessment_items",
        sa.Column("item_id", sa.Integer(), primary_key=True),
        sa.Column("course_offering_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("item_type", sa.Enum("component", "question", name="item_type"), nullable=False),
        sa.Column("parent_item_id", sa.Integer(), nullable=True),
        sa.Column("total_marks", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(["course_offering_id"], ["course_offerings.course_offering_id"]),
        sa.ForeignKeyConstraint(["parent_item_id"], ["assessment_items.item_id"]),
    )
    op.create_table(
        "allocation_rows",
        sa.Column("allocation_id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), nullable=False, index=True),
        sa.Column("clo_id", sa.Integer(), nullable=False, index=True),
        sa.Column("marks_allocated", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(["item_id"], ["assessment_items.item_id"]),
        sa.ForeignKeyConstraint(["clo_id"], ["outcomes.outcome_id"]),
        sa.UniqueConstraint("item_id", "clo_id", name="unique_item_clo"),
    )
    op.create_table(
        "score_records",
        sa.Column("score_id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False, index=True),
        sa.Column("obtained_marks", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(["student_id"], ["students.student_id"]),
        sa.ForeignKeyConstraint(["item_id"], ["assessment_items.item_id"]),
        sa.UniqueConstraint("student_id", "item_id", name="unique_student_item"),
    )
    op.create_table(
        "attainment_results",
        sa.Column("result_id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), nullable=True),
        *_attainment_columns(),
        sa.UniqueConstraint("subject_key", "outcome_id", "computed_at", name="unique_result_key"),
    )
    op.create_table(
        "attainment_staging",
        sa.Column("staging_id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), nullable=False, index=True),
        *_attainment_columns(),
    )
    op.create_table(
        "attainment_overrides",
        sa.Column("override_id", sa.Integer(), primary_key=True),
        sa.Column("subject_key", sa.String(length=40), nullable=False),
        sa.Column("outcome_id", sa.Integer(), nullable=False, index=True),
        sa.Column("original_percentage", sa.Float(), nullable=True),
        sa.Column("override_percentage", sa.Float(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
    )
    op.create_table(
        "threshold_profiles",
        sa.Column("profile_id", sa.Integer(), primary_key=True),
        sa.Column("program_id", sa.Integer(), nullable=True),
        sa.Column("tier", sa.String(length=3), nullable=True),
        sa.Column("outcome_id", sa.Integer(), nullable=True, unique=True),
        sa.Column("excellent", sa.Float(), nullable=False),
        sa.Column("high", sa.Float(), nullable=False),
        sa.Column("medium", sa.Float(), nullable=False),
        sa.Column("low", sa.Float(), nullable=False),
        sa.Column("pass_threshold", sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(["program_id"], ["programs.program_id"]),
        sa.ForeignKeyConstraint(["outcome_id"], ["outcomes.outcome_id"]),
        sa.UniqueConstraint("program_id", "tier", "outcome_id", name="unique_threshold_target"),
    )
    op.create_table(
        "scope_revisions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope_key", sa.String(length=40), nullable=False, unique=True),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
    )
    op.create_table(
        "recompute_jobs",
        sa.Column("job_id", sa.Integer(), primary_key=True),
        sa.Column("scope_type", sa.String(length=20), nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=False),
        sa.Column("rollup_strategy", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("revision_at_start", sa.Integer(), nullable=True),
        sa.Column("score_revision_at_start", sa.Integer(), nullable=True),
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("outcomes_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("outcomes_done", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "audit_logs",
        sa.Column("audit_id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("table_name", sa.String(length=50), nullable=False),
        sa.Column("record_id", sa.Integer(), nullable=True),
        sa.Column("old_values", sa.Text(), nullable=True),
        sa.Column("new_values", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
    )


def downgrade():
    for table in (
        "audit_logs", "recompute_jobs", "scope_revisions", "threshold_profiles",
        "attainment_overrides", "attainment_staging", "attainment_results",
        "score_records", "allocation_rows", "assessment_items", "mapping_edges",
        "outcomes", "students", "course_offerings", "programs",
    ):
        op.drop_table(table)
