"""
Tests for Database session management.
"""

import pytest
from sqlalchemy import inspect

from tribora.database.models import Content
from tribora.database.session import Database


class TestDatabase:
    def test_requires_url(self):
        with pytest.raises(RuntimeError):
            Database({'database': {}})

    def test_init_db_and_session_scope(self, tmp_path):
        database = Database({'database': {'url': f"sqlite:///{tmp_path / 'tribora.db'}"}})
        try:
            database.init_db()
            assert {'content', 'jobs', 'embedding_chunks', 'video_frames'} <= set(
                inspect(database.engine).get_table_names())
            assert database.check_connection()

            with database.session_scope() as session:
                session.add(Content(org_id='org-a', content_type='audio'))
            with pytest.raises(ValueError):
                with database.session_scope() as session:
                    session.add(Content(org_id='org-a', content_type='video'))
                    session.flush()
                    raise ValueError('abort')

            with database.session_scope() as session:
                assert [c.content_type for c in session.query(Content)] == ['audio']
        finally:
            database.dispose()
