from ..config import Settings
from .errors import StorageError
from .sqlite import SqliteStore

__all__ = ["StorageError", "SqliteStore", "open_store"]


def open_store(settings: Settings):
    """Postgres if DATABASE_URL is set, else SQLite under the store path."""
    if settings.database_url:
        from .postgres import PostgresStore
        return PostgresStore(settings.database_url)
    return SqliteStore(settings.store_path)
