"""
Generic CRUD layer for FastAPI + async SQLAlchemy services.
"""

__version__ = "1.0.0"
