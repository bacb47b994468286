"""
Database package: engine/session management and the ORM models.
"""

from .session import Database, get_database, get_session, init_db
from .models import Base

__all__ = [
    'Database',
    'get_database',
    'get_session',
    'init_db',
    'Base',
]
