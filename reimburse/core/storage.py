"""Key-value persistence for users, rules, custom roles and expenses.

Values are JSON documents. Every read returns an independent copy, so
callers mutate what they get and write it back with set(); there are no
partial updates.

Keys in use:
    users          list of user dicts
    rules          the RuleSet dict
    custom_roles   list of role names
    expense:<id>   one expense dict per key
"""

import copy
import json
import logging
import threading

from .base_repository import BaseRepository

logger = logging.getLogger('reimburse.core.storage')

USERS_KEY = 'users'
RULES_KEY = 'rules'
CUSTOM_ROLES_KEY = 'custom_roles'
EXPENSE_PREFIX = 'expense:'


def expense_key(expense_id):
    return f'{EXPENSE_PREFIX}{expense_id}'


class KeyValueStore:
    """Interface shared by the store backends."""

    def get(self, key, default=None):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def keys(self, prefix=''):
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store. Used for tests, demos and single-process hosts."""

    def __init__(self, initial=None):
        self._data = {}
        self._lock = threading.RLock()
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key, default=None):
        with self._lock:
            if key not in self._data:
                return copy.deepcopy(default)
            return json.loads(self._data[key])

    def set(self, key, value):
        # Round-trip through JSON so the memory backend rejects the same values PostgreSQL would.
        encoded = json.dumps(value)
        with self._lock:
            self._data[key] = encoded

    def delete(self, key):
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix=''):
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class PostgresStore(KeyValueStore, BaseRepository):
    """JSONB key-value table on PostgreSQL."""

    def __init__(self, table='kv_store'):
        if not table.replace('_', '').isalnum():
            raise ValueError(f"Invalid table name '{table}'")
        self._table = table

    def ensure_schema(self):
        """Create the backing table if it does not exist."""
        self.execute(f'''
            CREATE TABLE IF NOT EXISTS {self._table} (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        logger.info(f'Key-value table {self._table} ready')

    def get(self, key, default=None):
        row = self.query_one(f'SELECT value FROM {self._table} WHERE key = %s', (key,))
        if row is None:
            return copy.deepcopy(default)
        value = row['value']
        # psycopg2 decodes JSONB already; plain JSON text arrives as str
        if isinstance(value, str):
            return json.loads(value)
        return value

    def set(self, key, value):
        self.execute(f'''
            INSERT INTO {self._table} (key, value, updated_at)
            VALUES (%s, %s::jsonb, CURRENT_TIMESTAMP)
            ON CONFLICT (key) DO UPDATE
                SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
        ''', (key, json.dumps(value)))

    def delete(self, key):
        return self.execute(f'DELETE FROM {self._table} WHERE key = %s', (key,)) > 0

    def keys(self, prefix=''):
        rows = self.query_all(
            f'SELECT key FROM {self._table} WHERE key LIKE %s ORDER BY key',
            (_like_prefix(prefix),),
        )
        return [r['key'] for r in rows]


def _like_prefix(prefix):
    escaped = prefix.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return escaped + '%'


def create_store(config):
    """Build the store selected by an AppConfig."""
    if config.storage_backend == 'postgres':
        from reimburse import database
        database.configure(config.database_url, config.db_pool_min_conn, config.db_pool_max_conn)
        store = PostgresStore(table=config.kv_table)
        store.ensure_schema()
        return store
    logger.info('Using in-memory store; data is lost on restart')
    return MemoryStore()
