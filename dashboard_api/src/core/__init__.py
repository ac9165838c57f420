"""
Core application utilities shared by routes and services.

This package provides:
- Application-level settings (separate from DB settings) and feature flags
- Logging context, error envelope helpers and version metadata
- Dependency helpers (token verification, organization scope, role checks, rate limiting)
"""
