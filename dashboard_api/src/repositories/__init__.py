"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area and always take
the organization id explicitly; services decide when to commit.
"""
