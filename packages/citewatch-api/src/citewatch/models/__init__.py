"""SQLAlchemy ORM models."""

from citewatch.models.base import Base
from citewatch.models.api_key import ApiKey
from citewatch.models.monitor import ChangeLog, Monitor

__all__ = [
    "Base",
    "ApiKey",
    "Monitor",
    "ChangeLog",
]
