"""Dashboard schema with organization scoping and RLS.

- organizations, users, user_organizations, analytics_events
- assessments, assessment_assignments, assessment_submissions, ocean_assessment_results
- dashboard_metrics, metrics_history, user_activity_logs, assessment_aggregations
- report_templates, weekly_reports, report_sections, report_distribution_lists
- system_performance_metrics, scheduled_job_logs, scheduled_job_config

Organization-scoped data tables get an RLS policy keyed on the
app.organization_id GUC set by src.db.session.set_current_organization.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1d9e7a2b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


NOW = sa.text("now()")
JSONB = postgresql.JSONB(astext_type=sa.Text())
JSONB_EMPTY = sa.text("'{}'::jsonb")
JSONB_EMPTY_LIST = sa.text("'[]'::jsonb")
DECIMAL = sa.Numeric(15, 4)

ORG_SCOPED_TABLES = [
    "assessments",
    "ocean_assessment_results",
    "dashboard_metrics",
    "metrics_history",
    "user_activity_logs",
    "assessment_aggregations",
    "weekly_reports",
    "report_distribution_lists",
]


def _id() -> sa.Column:
    return sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _org(nullable: bool = False) -> sa.Column:
    return sa.Column(
        "organization_id",
        sa.UUID(),
        sa.ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    ]


def _enable_rls_with_policy(table: str) -> None:
    op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;")
    op.execute(
        f"""
        CREATE POLICY {table}_organization_isolation ON {table}
        USING (organization_id = current_setting('app.organization_id', true)::uuid)
        WITH CHECK (organization_id = current_setting('app.organization_id', true)::uuid);
        """
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    # ORGANIZATIONS & USERS
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("settings", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.Text(), nullable=False, unique=True),
        sa.Column("full_name", sa.Text()),
        sa.Column("hashed_password", sa.Text()),
        sa.Column("department", sa.Text()),
        sa.Column("role", sa.Text()),
        sa.Column("avatar_url", sa.Text()),
        sa.Column("preferences", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_superadmin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_login", sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_table(
        "user_organizations",
        _id(),
        _org(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.Text(), nullable=False, server_default="member"),
        sa.Column("permissions", JSONB, nullable=False, server_default=JSONB_EMPTY_LIST),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("invited_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("organization_id", "user_id", name="uq_user_organizations_org_user"),
        sa.CheckConstraint("role IN ('owner','admin','manager','member')", name="ck_user_organizations_role"),
    )
    op.create_index("ix_user_organizations_organization_id", "user_organizations", ["organization_id"])
    op.create_index("ix_user_organizations_user_id", "user_organizations", ["user_id"])
    op.create_table(
        "analytics_events",
        _id(),
        _org(nullable=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("event_data", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index("ix_analytics_events_organization_id", "analytics_events", ["organization_id"])

    # ASSESSMENTS
    op.create_table(
        "assessments",
        _id(),
        _org(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("type", sa.Text(), nullable=False, server_default="ocean"),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("questions", JSONB, nullable=False, server_default=JSONB_EMPTY_LIST),
        sa.Column("settings", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("due_date", sa.DateTime(timezone=True)),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("archived_at", sa.DateTime(timezone=True)),
        sa.Column("archived_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        *_timestamps(),
    )
    op.create_index("ix_assessments_organization_id", "assessments", ["organization_id"])
    op.create_index("ix_assessments_status", "assessments", ["status"])
    op.create_index("ix_assessments_user_id", "assessments", ["user_id"])
    op.create_table(
        "assessment_assignments",
        _id(),
        sa.Column("assessment_id", sa.UUID(), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("score", sa.Float()),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("assessment_id", "user_id", name="uq_assessment_assignments_assessment_user"),
    )
    op.create_index("ix_assessment_assignments_assessment_id", "assessment_assignments", ["assessment_id"])
    op.create_index("ix_assessment_assignments_user_id", "assessment_assignments", ["user_id"])
    op.create_table(
        "assessment_submissions",
        _id(),
        sa.Column("assessment_id", sa.UUID(), sa.ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("responses", JSONB, nullable=False, server_default=JSONB_EMPTY_LIST),
        sa.Column("score", sa.Float()),
        sa.Column("status", sa.Text(), nullable=False, server_default="completed"),
        sa.Column("ocean_trait_scores", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("time_taken_seconds", sa.Integer()),
        *_timestamps(),
    )
    op.create_index("ix_assessment_submissions_assessment_id", "assessment_submissions", ["assessment_id"])
    op.create_index("ix_assessment_submissions_user_id", "assessment_submissions", ["user_id"])
    op.create_table(
        "ocean_assessment_results",
        _id(),
        _org(),
        sa.Column("assessment_id", sa.UUID(), sa.ForeignKey("assessments.id", ondelete="CASCADE")),
        sa.Column("assessment_submission_id", sa.UUID(), sa.ForeignKey("assessment_submissions.id", ondelete="CASCADE")),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        *[
            sa.Column(f"{trait}_score", sa.Float(), nullable=False)
            for trait in ("openness", "conscientiousness", "extraversion", "agreeableness", "neuroticism")
        ],
        sa.Column("facet_scores", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("calculation_method", sa.Text(), nullable=False, server_default="standard"),
        *_timestamps(),
    )
    op.create_index("ix_ocean_assessment_results_organization_id", "ocean_assessment_results", ["organization_id"])
    op.create_index("ix_ocean_assessment_results_assessment_id", "ocean_assessment_results", ["assessment_id"])

    # DASHBOARD
    op.create_table(
        "dashboard_metrics",
        _id(),
        _org(),
        sa.Column("metric_type", sa.String(50), nullable=False),
        sa.Column("metric_name", sa.String(100), nullable=False),
        sa.Column("metric_value", DECIMAL, nullable=False),
        sa.Column("metric_unit", sa.String(20)),
        sa.Column("dimension_1", sa.String(100)),
        sa.Column("dimension_2", sa.String(100)),
        sa.Column("dimension_3", sa.String(100)),
        sa.Column("metadata", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("calculation_method", sa.Text()),
        sa.Column("data_source", sa.String(50)),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_dashboard_metrics_organization_id", "dashboard_metrics", ["organization_id"])
    op.create_index(
        "ix_dashboard_metrics_org_type_recorded", "dashboard_metrics", ["organization_id", "metric_type", "recorded_at"]
    )
    op.create_table(
        "metrics_history",
        _id(),
        _org(),
        sa.Column("metric_id", sa.UUID()),
        sa.Column("metric_type", sa.String(50), nullable=False),
        sa.Column("metric_name", sa.String(100), nullable=False),
        sa.Column("previous_value", DECIMAL),
        sa.Column("current_value", DECIMAL, nullable=False),
        sa.Column("change_value", DECIMAL),
        sa.Column("change_percentage", sa.Numeric(8, 4)),
        sa.Column("change_type", sa.String(20)),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("calculation_context", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index("ix_metrics_history_organization_id", "metrics_history", ["organization_id"])
    op.create_table(
        "user_activity_logs",
        _id(),
        _org(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("activity_type", sa.String(50), nullable=False),
        sa.Column("activity_subtype", sa.String(50)),
        sa.Column("page_path", sa.String(255)),
        sa.Column("session_id", sa.String(100)),
        sa.Column("user_agent", sa.Text()),
        sa.Column("ip_address", sa.String(64)),
        sa.Column("duration_seconds", sa.Integer()),
        sa.Column("interactions_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metadata", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index("ix_user_activity_logs_organization_id", "user_activity_logs", ["organization_id"])
    op.create_index("ix_user_activity_logs_user_id", "user_activity_logs", ["user_id"])
    op.create_index("ix_user_activity_logs_org_recorded", "user_activity_logs", ["organization_id", "recorded_at"])
    op.create_table(
        "assessment_aggregations",
        _id(),
        _org(),
        sa.Column("aggregation_type", sa.String(50), nullable=False),
        sa.Column("aggregation_key", sa.String(100), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("total_assessments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_assessments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ocean_scores", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("facet_scores", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("metadata", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("calculated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index("ix_assessment_aggregations_organization_id", "assessment_aggregations", ["organization_id"])

    # REPORTS
    op.create_table(
        "report_templates",
        _id(),
        _org(nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("template_type", sa.String(50), nullable=False),
        sa.Column("target_audience", sa.String(50)),
        sa.Column("sections_config", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("styling_config", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("export_formats", sa.String(100), nullable=False, server_default="pdf,excel"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        *_timestamps(),
    )
    op.create_index("ix_report_templates_organization_id", "report_templates", ["organization_id"])
    op.create_table(
        "weekly_reports",
        _id(),
        _org(),
        sa.Column("report_period_start", sa.Date(), nullable=False),
        sa.Column("report_period_end", sa.Date(), nullable=False),
        sa.Column("report_type", sa.String(50), nullable=False, server_default="standard"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("executive_summary", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("template_id", sa.UUID(), sa.ForeignKey("report_templates.id", ondelete="SET NULL")),
        sa.Column("generated_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("reviewed_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("published_at", sa.DateTime(timezone=True)),
        sa.Column("metadata", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('draft','generated','reviewed','published','archived')", name="ck_weekly_reports_status"
        ),
    )
    op.create_index("ix_weekly_reports_organization_id", "weekly_reports", ["organization_id"])
    op.create_index("ix_weekly_reports_org_period", "weekly_reports", ["organization_id", "report_period_start"])
    op.create_table(
        "report_sections",
        _id(),
        sa.Column("report_id", sa.UUID(), sa.ForeignKey("weekly_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("section_type", sa.String(50), nullable=False),
        sa.Column("section_title", sa.String(255), nullable=False),
        sa.Column("section_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("content", sa.Text()),
        sa.Column("charts_data", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("tables_data", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("insights", JSONB, nullable=False, server_default=JSONB_EMPTY),
        *_timestamps(),
    )
    op.create_index("ix_report_sections_report_id", "report_sections", ["report_id"])
    op.create_table(
        "report_distribution_lists",
        _id(),
        _org(),
        sa.Column("list_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("recipient_emails", JSONB, nullable=False, server_default=JSONB_EMPTY_LIST),
        sa.Column("recipient_roles", JSONB, nullable=False, server_default=JSONB_EMPTY_LIST),
        sa.Column("distribution_schedule", sa.String(50)),
        sa.Column("schedule_day_of_week", sa.Integer()),
        sa.Column("schedule_time", sa.Time()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_report_distribution_lists_organization_id", "report_distribution_lists", ["organization_id"])

    # SYSTEM
    op.create_table(
        "system_performance_metrics",
        _id(),
        sa.Column("metric_type", sa.String(50), nullable=False),
        sa.Column("metric_name", sa.String(100), nullable=False),
        sa.Column("metric_value", DECIMAL, nullable=False),
        sa.Column("metric_unit", sa.String(20)),
        sa.Column("service_name", sa.String(50)),
        sa.Column("endpoint", sa.String(255)),
        sa.Column("status_code", sa.Integer()),
        sa.Column("error_message", sa.Text()),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index(
        "ix_system_performance_metrics_type_recorded", "system_performance_metrics", ["metric_type", "recorded_at"]
    )
    op.create_table(
        "scheduled_job_logs",
        _id(),
        sa.Column("job_name", sa.String(100), nullable=False),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("duration_seconds", sa.Integer()),
        sa.Column("rows_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text()),
        sa.Column("metadata", JSONB, nullable=False, server_default=JSONB_EMPTY),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
    )
    op.create_index("ix_scheduled_job_logs_name_started", "scheduled_job_logs", ["job_name", "started_at"])
    op.create_table(
        "scheduled_job_config",
        _id(),
        sa.Column("job_name", sa.String(100), nullable=False, unique=True),
        sa.Column("job_type", sa.String(50), nullable=False),
        sa.Column("schedule_expression", sa.String(100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("last_run_at", sa.DateTime(timezone=True)),
        sa.Column("next_run_at", sa.DateTime(timezone=True)),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_failures", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("timeout_seconds", sa.Integer(), nullable=False, server_default="300"),
        sa.Column("configuration", JSONB, nullable=False, server_default=JSONB_EMPTY),
        *_timestamps(),
    )

    for tbl in ORG_SCOPED_TABLES:
        _enable_rls_with_policy(tbl)


def downgrade() -> None:
    for tbl in ORG_SCOPED_TABLES:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_organization_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")

    for tbl in [
        "scheduled_job_config",
        "scheduled_job_logs",
        "system_performance_metrics",
        "report_distribution_lists",
        "report_sections",
        "weekly_reports",
        "report_templates",
        "assessment_aggregations",
        "user_activity_logs",
        "metrics_history",
        "dashboard_metrics",
        "ocean_assessment_results",
        "assessment_submissions",
        "assessment_assignments",
        "assessments",
        "analytics_events",
        "user_organizations",
        "users",
        "organizations",
    ]:
        op.drop_table(tbl)
