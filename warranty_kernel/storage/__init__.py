"""Storage backends and the factory that picks one from configuration."""

from warranty_kernel.config import WarrantyConfig
from warranty_kernel.storage.base import StorageBackend
from warranty_kernel.storage.memory import InMemoryStorage
from warranty_kernel.storage.sql import SqlAlchemyStorage

MEMORY_URL = "memory://"


def build_storage(config: WarrantyConfig) -> StorageBackend:
    """InMemoryStorage for ``memory://``, else a SqlAlchemyStorage with tables created."""
    if config.database_url == MEMORY_URL:
        return InMemoryStorage()

    from warranty_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url

    engine = init_engine_from_url(config.database_url, echo=config.echo_sql)
    create_tables(engine)
    return SqlAlchemyStorage(get_session_factory())


__all__ = [
    "MEMORY_URL",
    "InMemoryStorage",
    "SqlAlchemyStorage",
    "StorageBackend",
    "build_storage",
]
