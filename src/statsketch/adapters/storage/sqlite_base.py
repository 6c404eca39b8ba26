"""Connection management shared by SQLite storage adapters."""

import asyncio
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager

import aiosqlite

DEFAULT_TIMEOUT = 5.0


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped. Tasks take turns on that
    connection, one connection() block at a time.

    Connections run with isolation_level=None so callers issue BEGIN/COMMIT
    themselves.
    """

    def __init__(
        self, db_path: str, schema: str, timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self._db_path = db_path
        self._schema = schema
        self._timeout = timeout
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._memory_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    def _get_memory_lock(self) -> asyncio.Lock:
        if self._memory_lock is None:
            self._memory_lock = asyncio.Lock()
        return self._memory_lock

    @property
    def _is_memory(self) -> bool:
        return self._db_path == ":memory:"

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(
            self._db_path, timeout=self._timeout, isolation_level=None
        )

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._is_memory:
                self._persistent_conn = await self._connect()
                await self._persistent_conn.executescript(self._schema)
            else:
                async with self._connect() as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        await self._ensure_initialized()
        if self._is_memory:
            async with self._get_memory_lock():
                if self._persistent_conn is None:
                    raise RuntimeError("Memory database connection not initialized")
                yield self._persistent_conn
            return
        db = await self._connect()
        try:
            yield db
        finally:
            await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SyncConnectionManager:
    """Manages sync (sqlite3) database connections.

    Handles schema initialization and connection lifecycle for sync contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped. Threads take turns on that
    connection, one connection() block at a time.

    IMPORTANT: For :memory: databases, this manager maintains a completely
    separate database instance from AsyncConnectionManager.
    """

    def __init__(
        self, db_path: str, schema: str, timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self._db_path = db_path
        self._schema = schema
        self._timeout = timeout
        self._initialized = False
        self._lock = threading.Lock()
        self._memory_lock = threading.RLock()
        self._persistent_conn: sqlite3.Connection | None = None

    @property
    def _is_memory(self) -> bool:
        return self._db_path == ":memory:"

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(
            self._db_path,
            timeout=self._timeout,
            isolation_level=None,
            check_same_thread=not self._is_memory,
        )

    def _ensure_initialized(self) -> None:
        """Initialize database schema synchronously."""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if self._is_memory:
                self._persistent_conn = self._connect()
                self._persistent_conn.executescript(self._schema)
            else:
                db = self._connect()
                try:
                    db.execute("PRAGMA journal_mode=WAL")
                    db.executescript(self._schema)
                finally:
                    db.close()
            self._initialized = True

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        self._ensure_initialized()
        if self._is_memory:
            with self._memory_lock:
                if self._persistent_conn is None:
                    raise RuntimeError("Sync memory database connection not initialized")
                yield self._persistent_conn
            return
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        with self._lock:
            if self._persistent_conn is not None:
                self._persistent_conn.close()
                self._persistent_conn = None
                self._initialized = False


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager and SyncConnectionManager.
    Subclasses provide schema and implement domain-specific read/write methods.

    IMPORTANT - :memory: Database Isolation:
    When using :memory: databases, the sync (sqlite3) and async (aiosqlite)
    connections are COMPLETELY SEPARATE and do NOT share data. Each manager
    maintains its own in-memory database instance.
    """

    def __init__(
        self, db_path: str, schema: str, timeout: float = DEFAULT_TIMEOUT
    ) -> None:
        self._db_path = db_path
        self._schema = schema
        self._async_manager = AsyncConnectionManager(db_path, schema, timeout)
        self._sync_manager = SyncConnectionManager(db_path, schema, timeout)

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._async_manager.close()

    def close_sync(self) -> None:
        """Close the persistent sync connection (for :memory: databases)."""
        self._sync_manager.close()

    # --- Connection context managers (delegate to managers) ---

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections."""
        async with self._async_manager.connection() as conn:
            yield conn

    @contextmanager
    def sync_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections."""
        with self._sync_manager.connection() as conn:
            yield conn
