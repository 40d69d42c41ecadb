"""
Presale Admin - Connection Manager
==================================
Owns the single MongoDB client handle used by the whole process.

The connection is established lazily on the first request and memoized.
A failed attempt leaves the manager disconnected, so the next request
simply tries again. There is no backoff and no circuit breaker.

Usage:
    connection = ConnectionManager(url, db_name, timeout_ms=5000)
    connection.ensure_connected()    # dial once, no-op afterwards
    connection.database["walletaddresses"].find_one(...)
"""

import logging
import threading
from typing import Callable

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from presale.errors import StoreConnectionError

logger = logging.getLogger("presale.database")


class ConnectionManager:
    """
    Lazily connects to MongoDB and hands out the configured database.

    Attributes:
        url:            MongoDB connection string.
        db_name:        Name of the database holding all collections.
        timeout_ms:     Server selection timeout for the first dial.
        client_factory: Callable building the client (MongoClient by default).
    """

    def __init__(
        self,
        url: str,
        db_name: str,
        timeout_ms: int = 5000,
        client_factory: Callable[..., MongoClient] = MongoClient,
    ):
        self.url = url
        self.db_name = db_name
        self.timeout_ms = timeout_ms
        self.client_factory = client_factory

        self._client: MongoClient | None = None
        self._database: Database | None = None
        self._lock = threading.Lock()
        self._on_connect: list[Callable[[Database], None]] = []

    @property
    def is_connected(self) -> bool:
        return self._database is not None

    @property
    def database(self) -> Database:
        """The connected database. Connects first if needed."""
        return self.ensure_connected()

    def add_connect_hook(self, hook: Callable[[Database], None]) -> None:
        """Register a callable run once right after the first successful dial."""
        self._on_connect.append(hook)

    def ensure_connected(self) -> Database:
        """
        Connect if not connected yet.

        Safe to call from concurrent request threads: only one of them
        dials, the others wait on the lock and reuse its handle.

        Returns:
            The connected Database.

        Raises:
            StoreConnectionError: If the server cannot be reached. The
                manager stays disconnected and the next call retries.
        """
        database = self._database
        if database is not None:
            return database

        with self._lock:
            if self._database is not None:
                return self._database

            client = None
            try:
                client = self.client_factory(
                    self.url, serverSelectionTimeoutMS=self.timeout_ms
                )
                # MongoClient connects lazily, force a round-trip
                client.server_info()
                database = client[self.db_name]
                for hook in self._on_connect:
                    hook(database)
            except PyMongoError as e:
                logger.error("MongoDB connection failed: %s", e)
                if client is not None:
                    client.close()
                raise StoreConnectionError("Database connection failed") from e

            self._client = client
            self._database = database
            logger.info("MongoDB connected (database=%s)", self.db_name)
            return database

    def close(self) -> None:
        """Close the client. A later ensure_connected() dials again."""
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._database = None
