from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ErrorResponses
from src.db.base import utcnow
from src.db.models.assessments import OCEAN_TRAITS
from src.db.models.reports import ReportTemplate, WeeklyReport
from src.repositories.reports import ReportRepository
from src.schemas.dashboard import DashboardSummary, TrendResponse
from src.services.dashboard import DashboardService
from src.services.exporter import ExportedFile, document_from_sections, export_report
from src.services.realtime import realtime_manager

logger = logging.getLogger(__name__)

METRIC_TABLE_HEADERS = ["Metric Type", "Metric Name", "Value", "Unit", "Recorded At"]
DEPARTMENT_TABLE_HEADERS = ["Department", "Total Assessments", "Completed", "Completion Rate"]


# PUBLIC_INTERFACE
def build_executive_summary(
    summary: DashboardSummary,
    period_start: date,
    period_end: date,
    engagement_trend: Optional[str] = None,
) -> str:
    """Narrative summary of engagement, completion, activity volume and engagement trend."""
    text = f"This weekly report covers the period from {period_start.isoformat()} to {period_end.isoformat()}. "

    engagement = summary.user_stats.engagement_rate
    if engagement > 70:
        text += f"Excellent user engagement with {engagement}% of users active during the period. "
    elif engagement > 40:
        text += f"Good user engagement with {engagement}% of users active during the period. "
    else:
        text += f"User engagement needs attention with only {engagement}% of users active during the period. "

    completion = summary.assessment_stats.completion_rate
    if completion > 80:
        text += f"Outstanding assessment completion rate of {completion}%. "
    elif completion > 60:
        text += f"Solid assessment completion rate of {completion}%. "
    else:
        text += f"Assessment completion rate of {completion}% indicates room for improvement. "

    text += f"A total of {summary.activity_stats.total_activities} user activities were recorded during this period. "

    if engagement_trend == "positive":
        text += "User engagement shows a positive trend. "
    elif engagement_trend == "negative":
        text += "User engagement shows a declining trend that requires attention. "

    return text.strip()


# PUBLIC_INTERFACE
def average_ocean_scores(aggregations: Sequence[Any]) -> Dict[str, float]:
    """Per-trait mean of the aggregation rows' ocean_scores, ignoring rows without a trait value."""
    totals: Dict[str, List[float]] = {trait: [] for trait in OCEAN_TRAITS}
    for aggregation in aggregations:
        scores = getattr(aggregation, "ocean_scores", None) or {}
        for trait in OCEAN_TRAITS:
            value = scores.get(trait)
            if value is not None:
                totals[trait].append(float(value))
    return {trait: round(sum(values) / len(values), 2) for trait, values in totals.items() if values}


# PUBLIC_INTERFACE
def activity_volume_label(total_activities: int) -> str:
    if total_activities > 50:
        return "high"
    if total_activities > 20:
        return "moderate"
    return "low"


def _metrics_section(summary: DashboardSummary, metrics: Sequence[Any], engagement: TrendResponse) -> Dict[str, Any]:
    stats = summary.assessment_stats
    content = (
        f"During this period, {summary.user_stats.active_users} out of {summary.user_stats.total_users} users "
        f"were active ({summary.user_stats.engagement_rate}% engagement). "
        f"{stats.completed_assessments} of {stats.total_assessments} assessments have been completed "
        f"({stats.completion_rate}% completion). "
        f"Activity volume was {activity_volume_label(summary.activity_stats.total_activities)} with "
        f"{summary.activity_stats.total_activities} recorded activities."
    )
    return {
        "section_type": "metrics_summary",
        "section_title": "Key Metrics Summary",
        "content": content,
        "charts_data": {
            "engagement_chart": {
                "type": "line",
                "labels": [p.week_start.isoformat() for p in engagement.trends],
                "values": [p.value for p in engagement.trends],
            },
            "completion_chart": {
                "type": "bar",
                "labels": ["Completed", "Pending"],
                "values": [stats.completed_assessments, max(stats.total_assessments - stats.completed_assessments, 0)],
            },
        },
        "tables_data": {
            "metrics_table": {
                "headers": METRIC_TABLE_HEADERS,
                "rows": [
                    [
                        m.metric_type,
                        m.metric_name,
                        m.metric_value,
                        m.metric_unit or "",
                        m.recorded_at.isoformat() if m.recorded_at else "",
                    ]
                    for m in list(metrics)[:10]
                ],
            }
        },
        "insights": {
            "engagement_rate": summary.user_stats.engagement_rate,
            "completion_rate": stats.completion_rate,
            "engagement_trend": engagement.overall_trend,
        },
    }


def _ocean_section(aggregations: Sequence[Any]) -> Dict[str, Any]:
    averages = average_ocean_scores(aggregations)
    ranked = sorted(averages.items(), key=lambda item: item[1], reverse=True)
    if not ranked:
        content = "No OCEAN assessment data available for this period."
    else:
        top_trait, top_value = ranked[0]
        total = sum(a.total_assessments for a in aggregations)
        completed = sum(a.completed_assessments for a in aggregations)
        content = (
            f"The highest average trait across the organization is {top_trait} ({top_value:.1f}). "
            f"{completed} of {total} assessments in the analysed groups were completed."
        )
    return {
        "section_type": "ocean_insights",
        "section_title": "OCEAN Assessment Insights",
        "content": content,
        "charts_data": {
            "ocean_distribution": {
                "type": "radar",
                "labels": list(averages.keys()),
                "values": list(averages.values()),
            }
        },
        "tables_data": {},
        "insights": {
            "top_traits": [{"trait": t, "score": v} for t, v in ranked[:3]],
            "improvement_areas": [{"trait": t, "score": v} for t, v in ranked[-2:]],
        },
    }


def _team_section(aggregations: Sequence[Any]) -> Dict[str, Any]:
    departments = [a for a in aggregations if a.aggregation_type == "ocean_department"]
    roles = [a for a in aggregations if a.aggregation_type == "ocean_role"]
    lines = ["Department breakdown:"]
    lines += [f"- {a.aggregation_key}: {a.completed_assessments}/{a.total_assessments} completed" for a in departments]
    if not departments:
        lines.append("- No department data")
    lines.append("")
    lines.append("Role breakdown:")
    lines += [f"- {a.aggregation_key}: {a.completed_assessments}/{a.total_assessments} completed" for a in roles]
    if not roles:
        lines.append("- No role data")
    return {
        "section_type": "team_performance",
        "section_title": "Team Performance Analysis",
        "content": "\n".join(lines),
        "charts_data": {},
        "tables_data": {
            "department_breakdown": {
                "headers": DEPARTMENT_TABLE_HEADERS,
                "rows": [
                    [
                        a.aggregation_key,
                        a.total_assessments,
                        a.completed_assessments,
                        f"{round(a.completed_assessments / a.total_assessments * 100) if a.total_assessments else 0}%",
                    ]
                    for a in departments
                ],
            }
        },
        "insights": {"departments": len(departments), "roles": len(roles)},
    }


def _activity_section(engagement: TrendResponse, completion: TrendResponse) -> Dict[str, Any]:
    content = (
        f"User engagement trend is {engagement.overall_trend.replace('_', ' ')} over "
        f"{engagement.periods_analyzed} week(s). Assessment completion trend is "
        f"{completion.overall_trend.replace('_', ' ')} over {completion.periods_analyzed} week(s)."
    )
    return {
        "section_type": "activity_trends",
        "section_title": "Activity Trends & Insights",
        "content": content,
        "charts_data": {
            "trend_analysis": {
                "type": "line",
                "labels": [p.week_start.isoformat() for p in engagement.trends],
                "series": {
                    "engagement": [p.value for p in engagement.trends],
                    "completion": [p.value for p in completion.trends],
                },
            }
        },
        "tables_data": {},
        "insights": {
            "engagement_trend": engagement.overall_trend,
            "completion_trend": completion.overall_trend,
        },
    }


def _template_sections(template: ReportTemplate, built: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    sections = []
    for entry in (template.sections_config or {}).get("sections", []):
        section_type = entry.get("type")
        title = entry.get("title") or str(section_type)
        if section_type in built:
            section = dict(built[section_type])
            section["section_title"] = title
        else:
            section = {
                "section_type": section_type or "custom",
                "section_title": title,
                "content": f"Content for {title} section",
                "charts_data": {},
                "tables_data": {},
                "insights": {},
            }
        sections.append(section)
    return sections


class ReportGenerator:
    """Builds report content from dashboard data and stores it as report sections."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.reports = ReportRepository(session)
        self.dashboard = DashboardService(session)

    async def _load(self, organization_id: UUID, report_id: UUID) -> WeeklyReport:
        report = await self.reports.get_report(organization_id, report_id, with_sections=True)
        if report is None:
            raise ErrorResponses.not_found("Report not found", code="REPORT_NOT_FOUND")
        return report

    async def build_sections(
        self, report: WeeklyReport, template: Optional[ReportTemplate] = None
    ) -> tuple[str, List[Dict[str, Any]]]:
        """Executive summary and ordered section payloads for the report period."""
        organization_id = report.organization_id
        start = datetime.combine(report.report_period_start, time.min, tzinfo=timezone.utc)
        end = datetime.combine(report.report_period_end, time.max, tzinfo=timezone.utc)

        summary = await self.dashboard.get_summary(organization_id, period_days=7)
        metrics, _ = await self.dashboard.get_metrics(organization_id, period_start=start, period_end=end, limit=100)
        engagement = await self.dashboard.get_trends(organization_id, "user_engagement", "active_user_percentage")
        completion = await self.dashboard.get_trends(organization_id, "assessment_completion", "completion_rate")
        aggregations = await self.dashboard.get_aggregations(
            organization_id, period_start=report.report_period_start, period_end=report.report_period_end
        )

        executive_summary = build_executive_summary(
            summary, report.report_period_start, report.report_period_end, engagement.overall_trend
        )
        built = {
            "metrics_summary": _metrics_section(summary, metrics, engagement),
            "team_performance": _team_section(aggregations),
            "activity_trends": _activity_section(engagement, completion),
        }
        if aggregations:
            built["ocean_insights"] = _ocean_section(aggregations)

        if template is not None and (template.sections_config or {}).get("sections"):
            sections = _template_sections(template, built)
        else:
            order = ("metrics_summary", "ocean_insights", "team_performance", "activity_trends")
            sections = [built[name] for name in order if name in built]
        for index, section in enumerate(sections):
            section["section_order"] = index + 1
        return executive_summary, sections

    # PUBLIC_INTERFACE
    async def generate(
        self,
        organization_id: UUID,
        report_id: UUID,
        *,
        force_regenerate: bool = False,
        export_format: str = "json",
        template_id: Optional[UUID] = None,
    ) -> tuple[WeeklyReport, bool, Optional[ExportedFile]]:
        """
        Generate (or reuse) report content.

        Returns (report, regenerated, export). Existing content is kept when the report is
        already generated with sections and force_regenerate is false.
        """
        report = await self._load(organization_id, report_id)
        regenerated = False
        if force_regenerate or report.status != "generated" or not report.sections:
            template = None
            chosen = template_id or report.template_id
            if chosen is not None:
                template = await self.reports.get_template(organization_id, chosen)
                if template is None:
                    raise ErrorResponses.not_found("Template not found", code="TEMPLATE_NOT_FOUND")

            executive_summary, sections = await self.build_sections(report, template)
            await self.reports.delete_sections(report.id)
            for section in sections:
                await self.reports.add_section(report.id, **section)

            report.status = "generated"
            report.executive_summary = executive_summary
            if template is not None:
                report.template_id = template.id
            report.metadata_ = {**(report.metadata_ or {}), "generation_date": utcnow().isoformat()}
            await self.reports.commit()
            report = await self._load(organization_id, report_id)
            regenerated = True
            logger.info("Generated report %s with %d section(s)", report_id, len(sections))

        export = None
        if export_format and export_format != "json":
            export = self.export(report, export_format)

        try:
            await realtime_manager.send_report_ready(
                organization_id,
                {"report_id": str(report.id), "title": report.title, "export_format": export_format},
            )
        except Exception:
            logger.exception("Failed to publish report_ready for report %s", report_id)
        return report, regenerated, export

    # PUBLIC_INTERFACE
    def export(self, report: WeeklyReport, export_format: str) -> ExportedFile:
        doc = document_from_sections(
            report.title,
            report.report_period_start,
            report.report_period_end,
            report.executive_summary or "",
            report.sections,
        )
        return export_report(doc, export_format)
