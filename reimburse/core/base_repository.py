"""Base Repository for the PostgreSQL-backed store.

query_one(), query_all() and execute() wrap get_db()/get_cursor()/release_db()
in try/finally, so subclasses only write SQL:

    class KeyValueTable(BaseRepository):
        def get(self, key):
            return self.query_one('SELECT value FROM kv_store WHERE key = %s', (key,))
"""

from reimburse.database import get_db, get_cursor, release_db, dict_from_row


class BaseRepository:

    def query_one(self, sql, params=None):
        """Execute a SELECT and return a single row as dict, or None."""
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            row = cursor.fetchone()
            return dict_from_row(row) if row else None
        finally:
            release_db(conn)

    def query_all(self, sql, params=None):
        """Execute a SELECT and return all rows as list of dicts."""
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            return [dict_from_row(r) for r in cursor.fetchall()]
        finally:
            release_db(conn)

    def execute(self, sql, params=None):
        """Execute a DDL or write statement and commit. Returns the rowcount."""
        conn = get_db()
        try:
            cursor = get_cursor(conn)
            cursor.execute(sql, params or ())
            conn.commit()
            return cursor.rowcount
        except Exception:
            conn.rollback()
            raise
        finally:
            release_db(conn)
