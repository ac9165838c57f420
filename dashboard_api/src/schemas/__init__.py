"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by domain module (users, assessments, dashboard, reports,
system, realtime) and also include common reusable models such as pagination,
the error envelope and standard message responses.
"""

from .common import MessageResponse  # noqa: F401
