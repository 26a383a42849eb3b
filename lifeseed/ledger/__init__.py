"""Ledger session for lifeseed.

This module provides the Ledger API for database operations. A Ledger is
one SQLite transaction: it commits when the with-block exits cleanly and
rolls back when an exception escapes. Operations are grouped per record
type and reached through properties.

ARCHITECTURE:
- Ledger owns its connection; settings and clock are injected, never global
- Connection closes on context exit, whatever the outcome
- Operations receive the Ledger and reach the connection through _get_conn(),
  which enforces context manager usage at runtime

USAGE:
    >>> with get_ledger(settings) as ledger:
    ...     tree = ledger.lifetree.plant(owner_id="u1", name="Oak", body="...")
    ...     block = ledger.chain.append_block(tree.uuid, payload, author)
    ...     # Both commit together on exit

CLOCK:
The clock is a zero-argument callable returning epoch milliseconds. Block
hashes are computed over its value, so tests inject a fixed clock to get
reproducible digests.
"""

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from ..config import Settings
from ..host.time import now_millis
from ..schemas import SCHEMA_VERSION, get_sql_schema
from ..utils import isodatetime

if TYPE_CHECKING:
    from .chain import ChainOperations
    from .lifetree import LifetreeOperations
    from .match import MatchOperations
    from .social import SocialOperations
    from .vision import VisionOperations

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


class Ledger:
    """
    Ledger session with per-record operations.

    Maintains its own connection and transaction state.
    Provides access to operations through lazily created properties.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        settings: Settings,
        clock: Optional[Clock] = None,
    ):
        """Initialize Ledger with a database connection.

        Args:
            connection: SQLite connection with row_factory set to sqlite3.Row
            settings: Settings carrying trust-anchor and paging configuration
            clock: Epoch-milliseconds clock (defaults to the host clock)
        """
        self._conn = connection
        self._in_context = False
        self._closed = False
        self.settings = settings
        self._clock = clock or now_millis
        self._lifetree_ops = None
        self._chain_ops = None
        self._vision_ops = None
        self._match_ops = None
        self._social_ops = None

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection, enforcing context manager usage.

        Raises:
            RuntimeError: If the Ledger is not being used as a context manager
        """
        if not self._in_context:
            raise RuntimeError(
                "Ledger must be used as a context manager. "
                "Use: with get_ledger(settings) as ledger:"
            )
        return self._conn

    def begin_write(self) -> None:
        """Take the database write lock for the rest of this session.

        sqlite3 only opens the transaction at the first write, so checks that
        run before it read outside any lock. Operations that check and then
        insert call this first; a session that has already written holds the
        lock and this is a no-op.

        Raises:
            sqlite3.OperationalError: If another session holds the write lock
                                      past settings.busy_timeout
        """
        conn = self._get_conn()
        if not conn.in_transaction:
            conn.execute("BEGIN IMMEDIATE")

    def now_ms(self) -> int:
        """Read the session clock."""
        return self._clock()

    def stamp(self, millis: int | None = None) -> str:
        """Persisted timestamp for millis (or for now)."""
        return isodatetime.from_millis(self.now_ms() if millis is None else millis)

    @property
    def lifetree(self) -> "LifetreeOperations":
        """Lifetree operations (plant, validate, guardianship, status)."""
        if self._lifetree_ops is None:
            from .lifetree import LifetreeOperations
            self._lifetree_ops = LifetreeOperations(self)
        return self._lifetree_ops

    @property
    def chain(self) -> "ChainOperations":
        """Chain operations (head, append, verify)."""
        if self._chain_ops is None:
            from .chain import ChainOperations
            self._chain_ops = ChainOperations(self)
        return self._chain_ops

    @property
    def vision(self) -> "VisionOperations":
        """Vision operations."""
        if self._vision_ops is None:
            from .vision import VisionOperations
            self._vision_ops = VisionOperations(self)
        return self._vision_ops

    @property
    def match(self) -> "MatchOperations":
        """Match proposal operations."""
        if self._match_ops is None:
            from .match import MatchOperations
            self._match_ops = MatchOperations(self)
        return self._match_ops

    @property
    def social(self) -> "SocialOperations":
        """Love and comment operations."""
        if self._social_ops is None:
            from .social import SocialOperations
            self._social_ops = SocialOperations(self)
        return self._social_ops

    def __enter__(self) -> "Ledger":
        if self._closed:
            raise RuntimeError("Ledger session already closed; open a new one")
        self._in_context = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager, committing or rolling back the transaction."""
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
                logger.debug("Ledger transaction rolled back: %s", exc_type.__name__)
        finally:
            self._in_context = False
            self._closed = True
            self._conn.close()


def _database_file(settings: Settings) -> Path:
    """Ledger database path with its parent directory created."""
    db_path = Path(settings.database_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


def _create_connection(settings: Settings) -> sqlite3.Connection:
    """Create a fresh database connection.

    Returns:
        SQLite connection with row_factory set to sqlite3.Row,
        foreign keys enabled, and WAL mode for concurrent access.
    """
    db_path = _database_file(settings)

    conn = sqlite3.connect(str(db_path), timeout=float(settings.busy_timeout))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def get_ledger(settings: Settings, clock: Optional[Clock] = None) -> Ledger:
    """
    Open a Ledger session.

    Args:
        settings: Settings for this deployment
        clock: Optional epoch-milliseconds clock

    Returns:
        Ledger instance; use it as a context manager

    Examples:
        >>> with get_ledger(settings) as ledger:
        ...     head = ledger.chain.head(tree_id)
    """
    return Ledger(_create_connection(settings), settings, clock=clock)


# ============================================================================
# DATABASE INITIALIZATION
# ============================================================================

def _get_current_schema_version(db: sqlite3.Connection) -> str | None:
    row = db.execute(
        "SELECT value FROM _schema_metadata WHERE key = 'version'"
    ).fetchone()
    return row[0] if row else None


def init_db(settings: Settings) -> None:
    """Initialize the database by applying the bundled schema if needed.

    Raises:
        RuntimeError: If the database carries no schema version, or one
                      newer than this code understands
    """
    db_path = _database_file(settings)

    db = sqlite3.connect(str(db_path))
    try:
        initialized = db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='_schema_metadata'"
        ).fetchone()
        if initialized:
            current_version = _get_current_schema_version(db)
            if current_version is None:
                raise RuntimeError("Database has _schema_metadata table but no version set")
            if current_version > SCHEMA_VERSION:
                raise RuntimeError(
                    f"Database schema {current_version} is newer than supported {SCHEMA_VERSION}"
                )
            if current_version < SCHEMA_VERSION:
                logger.warning(
                    "Database schema %s is older than %s; applying additive schema",
                    current_version, SCHEMA_VERSION,
                )
                db.executescript(get_sql_schema("ledger"))
                db.execute(
                    "UPDATE _schema_metadata SET value = ? WHERE key = 'version'",
                    (SCHEMA_VERSION,),
                )
                db.commit()
            return

        db.executescript(get_sql_schema("ledger"))
        db.commit()
        logger.info("Initialized ledger database at %s", db_path)
    finally:
        db.close()


__all__ = ["Clock", "Ledger", "get_ledger", "init_db"]
