"""Generic admin record browser: CRUD and type-ahead over registered SQLAlchemy models."""

__version__ = "1.0.0"
