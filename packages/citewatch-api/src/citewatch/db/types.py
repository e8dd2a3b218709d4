"""Custom SQLAlchemy column types."""

import json
from datetime import datetime, timezone

from sqlalchemy import DateTime, Text, TypeDecorator


class JSONType(TypeDecorator):
    """Portable JSON column stored as TEXT.

    Values are serialized with ``default=str`` so datetimes and enums inside
    snapshot payloads survive the round trip as strings.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return json.dumps(value, default=str)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return json.loads(value)
        return None


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back in UTC.

    SQLite drops tzinfo on the way in; naive values read back are assumed UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
