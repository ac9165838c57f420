"""
ORM models for organizations and users, assessments, dashboard metrics,
weekly reports, and system monitoring.

Importing this package registers every mapped class with the Base metadata
for Alembic and runtime usage.
"""

from .organizations import (  # noqa: F401
    Organization,
    User,
    UserOrganization,
    AnalyticsEvent,
)
from .assessments import (  # noqa: F401
    OCEAN_TRAITS,
    Assessment,
    AssessmentAssignment,
    AssessmentSubmission,
    OceanAssessmentResult,
)
from .dashboard import (  # noqa: F401
    DashboardMetric,
    MetricsHistory,
    UserActivityLog,
    AssessmentAggregation,
)
from .reports import (  # noqa: F401
    REPORT_STATUSES,
    WeeklyReport,
    ReportSection,
    ReportTemplate,
    ReportDistributionList,
)
from .system import (  # noqa: F401
    SystemPerformanceMetric,
    ScheduledJobLog,
    ScheduledJobConfig,
)
