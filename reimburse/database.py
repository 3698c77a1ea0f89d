"""Reimburse database module.

PostgreSQL connection pool and helpers used by the key-value store.
The pool is created lazily, so importing this module never needs a
running database; only the PostgreSQL store touches it.
"""
import os
import threading
import logging

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor


logger = logging.getLogger('reimburse.database')

_connection_pool = None
_pool_lock = threading.Lock()

_settings = {
    'dsn': os.environ.get('DATABASE_URL'),
    'min_conn': int(os.environ.get('DB_POOL_MIN_CONN', '1')),
    'max_conn': int(os.environ.get('DB_POOL_MAX_CONN', '8')),
}


def configure(database_url, min_conn=None, max_conn=None):
    """Set pool parameters. Closes an existing pool so the next get_db() reconnects."""
    global _connection_pool
    with _pool_lock:
        _settings['dsn'] = database_url
        if min_conn is not None:
            _settings['min_conn'] = min_conn
        if max_conn is not None:
            _settings['max_conn'] = max_conn
        if _connection_pool is not None:
            _connection_pool.closeall()
            _connection_pool = None


def _get_pool():
    """Get or create the connection pool (lazy initialization, thread-safe)."""
    global _connection_pool
    if _connection_pool is None:
        with _pool_lock:
            if _connection_pool is None:
                if not _settings['dsn']:
                    raise ValueError("DATABASE_URL is not configured. Set it to your PostgreSQL connection string.")
                _connection_pool = pool.ThreadedConnectionPool(
                    minconn=_settings['min_conn'],
                    maxconn=_settings['max_conn'],
                    dsn=_settings['dsn'],
                    keepalives=1,
                    keepalives_idle=30,
                    keepalives_interval=10,
                    keepalives_count=5,
                    connect_timeout=5,
                )
                logger.info(f"Connection pool created: min={_settings['min_conn']}, max={_settings['max_conn']}")
    return _connection_pool


def get_db():
    """Get PostgreSQL database connection from pool.

    Validates connection health before returning. Stale connections are
    discarded; retries up to 3 times.
    """
    max_retries = 3
    last_error = None

    for attempt in range(max_retries):
        conn = _get_pool().getconn()

        try:
            with conn.cursor() as cur:
                cur.execute('SELECT 1')
            conn.rollback()
            return conn
        except (psycopg2.OperationalError, psycopg2.InterfaceError, psycopg2.DatabaseError) as e:
            last_error = e
            logger.warning(f'Stale connection discarded (attempt {attempt + 1}/{max_retries}): {e}')
            try:
                _get_pool().putconn(conn, close=True)
            except Exception:
                pass

    raise psycopg2.OperationalError(f"Failed to get valid connection after {max_retries} attempts: {last_error}")


def release_db(conn):
    """Return connection to pool, closing it if it is broken."""
    if conn and _connection_pool:
        try:
            if conn.closed:
                _connection_pool.putconn(conn, close=True)
                return
            _connection_pool.putconn(conn)
        except Exception:
            try:
                _connection_pool.putconn(conn, close=True)
            except Exception:
                pass


def get_cursor(conn):
    """Get cursor with dict row factory."""
    return conn.cursor(cursor_factory=RealDictCursor)


def dict_from_row(row):
    """Convert database row to dictionary, serializing date/datetime values."""
    if row is None:
        return None
    result = dict(row)
    for key, value in result.items():
        if hasattr(value, 'isoformat'):
            result[key] = value.isoformat()
    return result


def ping_db():
    """Return True if the database answers a trivial query."""
    try:
        conn = get_db()
    except Exception as e:
        logger.error(f'Database ping failed: {e}')
        return False
    release_db(conn)
    return True
