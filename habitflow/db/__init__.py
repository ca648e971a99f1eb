"""Storage layer: PostgreSQL and in-memory stores with one interface"""
import logging
from typing import Union

from habitflow.config import STORE_BACKEND
from habitflow.db.connection import Database
from habitflow.db.memory_store import MemoryStore
from habitflow.db.postgres_store import PostgresStore

logger = logging.getLogger(__name__)

Store = Union[PostgresStore, MemoryStore]


async def create_store(backend: str = STORE_BACKEND) -> Store:
    """
    Build the configured store

    For 'postgres' the pool is opened and the schema applied before the
    store is returned.
    """
    if backend == "memory":
        logger.info("Using in-memory store")
        return MemoryStore()

    database = Database()
    await database.init_pool()
    await database.init_schema()
    logger.info("Using PostgreSQL store")
    return PostgresStore(database)


__all__ = ["Database", "MemoryStore", "PostgresStore", "Store", "create_store"]
