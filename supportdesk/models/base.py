from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

from supportdesk.utils.datetime_utils import utc_now

Base = declarative_base()


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamps."""
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)
