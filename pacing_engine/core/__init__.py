"""
Core infrastructure for the pacing engine.

Provides:
- Configuration management via pydantic-settings
- Business calendar helpers (pytz)
- Error taxonomy shared by services and routers
- BigQuery warehouse client and asyncpg plan store pool
- Read-through TTL cache and retry helpers

Dependency wiring for FastAPI lives in pacing_engine.core.dependencies and is
imported directly by the routers.
"""

from pacing_engine.core.config import Settings, get_settings
from pacing_engine.core.errors import (
    PacingError,
    ValidationError,
    WarehouseTimeoutError,
    QueryError,
    ConfigurationError,
    NotFoundError,
)
from pacing_engine.core.database import init_db, close_db, get_db_pool
from pacing_engine.core.warehouse import init_warehouse, close_warehouse, get_warehouse
from pacing_engine.core.cache import TTLCache, make_cache_key

__all__ = [
    'Settings',
    'get_settings',
    'PacingError',
    'ValidationError',
    'WarehouseTimeoutError',
    'QueryError',
    'ConfigurationError',
    'NotFoundError',
    'init_db',
    'close_db',
    'get_db_pool',
    'init_warehouse',
    'close_warehouse',
    'get_warehouse',
    'TTLCache',
    'make_cache_key',
]
