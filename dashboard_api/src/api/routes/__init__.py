"""
API route modules.

This package contains subrouters for:
- Auth: password login, token refresh, current user and profile bootstrap
- Users, Assessments, Dashboard, Reports: organization-scoped resources
- System: performance metrics, health and scheduled jobs (owners and admins)
- WebSocket: realtime connection info plus the /ws/realtime socket

Routers are included from src.api.main (under the /api prefix).
"""
