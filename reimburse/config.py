"""
Reimburse Configuration

Loads runtime settings from environment variables. The approval rules
themselves are NOT configuration; they live in the store and are edited
through the rules API.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class AppConfig:
    """Application settings loaded from environment."""

    # Storage
    database_url: Optional[str] = None
    storage_backend: str = "memory"  # memory, postgres
    kv_table: str = "kv_store"
    db_pool_min_conn: int = 1
    db_pool_max_conn: int = 8

    # Logging
    log_level: str = "INFO"
    log_json: bool = False  # JSON lines instead of the coloured dev format

    # Web
    secret_key: Optional[str] = None
    debug: bool = False

    # Engine
    enforce_eligibility: bool = True

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build configuration from environment variables."""
        database_url = os.environ.get('DATABASE_URL') or None
        backend = os.environ.get('STORAGE_BACKEND')
        if not backend:
            backend = 'postgres' if database_url else 'memory'

        return cls(
            database_url=database_url,
            storage_backend=backend.strip().lower(),
            kv_table=os.environ.get('KV_TABLE', 'kv_store'),
            db_pool_min_conn=int(os.environ.get('DB_POOL_MIN_CONN', '1')),
            db_pool_max_conn=int(os.environ.get('DB_POOL_MAX_CONN', '8')),
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
            log_json=_env_bool('LOG_JSON', False),
            secret_key=os.environ.get('FLASK_SECRET_KEY', os.environ.get('SECRET_KEY')),
            debug=_env_bool('FLASK_DEBUG', False),
            enforce_eligibility=_env_bool('ENFORCE_ELIGIBILITY', True),
        )

    def validate(self):
        """Raise ValueError on inconsistent settings."""
        if self.storage_backend not in ('memory', 'postgres'):
            raise ValueError(f"Unknown STORAGE_BACKEND '{self.storage_backend}'")
        if self.storage_backend == 'postgres' and not self.database_url:
            raise ValueError("DATABASE_URL is required when STORAGE_BACKEND=postgres")
        if self.db_pool_min_conn < 1 or self.db_pool_max_conn < self.db_pool_min_conn:
            raise ValueError("Invalid DB pool bounds")
