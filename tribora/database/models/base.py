"""
Base module for database models.

Contains the SQLAlchemy declarative base and the small helpers shared across
all model modules.
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy.orm import declarative_base


Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware UTC now, used for every timestamp column default."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())
