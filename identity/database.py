"""
SQLite persistence for accounts, login methods and confirmation tokens.

Every query method accepts an optional ``conn``. Without one, the method runs
in its own connection and commits; with one, it joins the caller's
transaction (see ``CredentialStore.transaction``).
"""
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .models import Account, ConfirmationToken, LoginMethod, Provider


logger = logging.getLogger(__name__)

SCHEMA = (
    '''
    CREATE TABLE IF NOT EXISTS accounts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE COLLATE NOCASE,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        password_hash TEXT,
        is_email_confirmed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TEXT NOT NULL,
        last_login TEXT
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS login_methods (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id INTEGER NOT NULL,
        provider TEXT NOT NULL,
        identifier TEXT NOT NULL COLLATE NOCASE,
        created_at TEXT NOT NULL,
        UNIQUE (account_id, provider),
        UNIQUE (provider, identifier),
        FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
    )
    ''',
    '''
    CREATE TABLE IF NOT EXISTS email_confirmations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id INTEGER NOT NULL,
        token TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        last_sent_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        is_stale BOOLEAN NOT NULL DEFAULT FALSE,
        FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
    )
    ''',
    # At most one live token per account
    '''
    CREATE UNIQUE INDEX IF NOT EXISTS idx_confirmations_live
        ON email_confirmations(account_id) WHERE is_stale = 0
    ''',
    'CREATE INDEX IF NOT EXISTS idx_confirmations_account ON email_confirmations(account_id)',
)


def to_db_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with fixed precision, so text order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


def _account_from_row(row: sqlite3.Row) -> Account:
    return Account(
        id=row['id'],
        username=row['username'],
        email=row['email'],
        password_hash=row['password_hash'],
        is_email_confirmed=bool(row['is_email_confirmed']),
        created_at=row['created_at'],
        last_login=row['last_login']
    )


def _token_from_row(row: sqlite3.Row) -> ConfirmationToken:
    return ConfirmationToken(
        id=row['id'],
        account_id=row['account_id'],
        token=row['token'],
        created_at=row['created_at'],
        last_sent_at=row['last_sent_at'],
        expires_at=row['expires_at'],
        is_stale=bool(row['is_stale'])
    )


class CredentialStore:
    """Accounts, login methods and confirmation tokens in one SQLite file."""

    def __init__(self, path: str, timeout: float = 5.0):
        self.path = path
        self.timeout = timeout

    def _open(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly with BEGIN
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run statements in one write transaction.

        BEGIN IMMEDIATE takes the database write lock up front, so a
        read-check-write sequence inside the block cannot interleave with
        another writer. Waiting for the lock is bounded by ``timeout``.
        """
        with self.get_connection() as conn:
            conn.execute('BEGIN IMMEDIATE')
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    @contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self.get_connection() as own:
                yield own

    def init_database(self) -> None:
        """Initialize database with required tables."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with self.get_connection() as conn:
            conn.execute('PRAGMA journal_mode = WAL')
            for statement in SCHEMA:
                conn.execute(statement)
        logger.info(f"Initialized identity database at {self.path}")

    # Account operations
    def create_account(
        self,
        username: str,
        email: str,
        password_hash: Optional[str],
        is_email_confirmed: bool,
        created_at: datetime,
        conn: Optional[sqlite3.Connection] = None
    ) -> int:
        """
        Insert an account row.

        Raises:
            sqlite3.IntegrityError: if the email or username is taken
        """
        with self._use(conn) as c:
            cursor = c.execute(
                '''INSERT INTO accounts
                       (username, email, password_hash, is_email_confirmed, created_at)
                   VALUES (?, ?, ?, ?, ?)''',
                (username, email.lower(), password_hash, is_email_confirmed,
                 to_db_timestamp(created_at))
            )
            return cursor.lastrowid

    def account_exists(
        self,
        email: str,
        username: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Case-insensitive check for an account with this email OR username."""
        with self._use(conn) as c:
            row = c.execute(
                '''SELECT EXISTS (
                       SELECT 1 FROM accounts
                       WHERE lower(email) = ? OR lower(username) = ?
                   )''',
                (email.lower(), username.lower())
            ).fetchone()
            return bool(row[0])

    def get_account_by_id(
        self,
        account_id: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Account]:
        """Get account by ID."""
        with self._use(conn) as c:
            row = c.execute('SELECT * FROM accounts WHERE id = ?', (account_id,)).fetchone()
            return _account_from_row(row) if row else None

    def get_account_by_email(
        self,
        email: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Account]:
        """Get account by email address, ignoring case."""
        with self._use(conn) as c:
            row = c.execute(
                'SELECT * FROM accounts WHERE lower(email) = ?', (email.lower(),)
            ).fetchone()
            return _account_from_row(row) if row else None

    def mark_email_confirmed(
        self,
        account_id: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Set the account's confirmation flag."""
        with self._use(conn) as c:
            cursor = c.execute(
                'UPDATE accounts SET is_email_confirmed = TRUE WHERE id = ?',
                (account_id,)
            )
            return cursor.rowcount > 0

    def update_last_login(
        self,
        account_id: int,
        when: datetime,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Update account's last login timestamp."""
        with self._use(conn) as c:
            cursor = c.execute(
                'UPDATE accounts SET last_login = ? WHERE id = ?',
                (to_db_timestamp(when), account_id)
            )
            return cursor.rowcount > 0

    # Login method operations
    def create_login_method(
        self,
        account_id: int,
        provider: Provider,
        identifier: str,
        created_at: datetime,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """
        Link a provider identity to an account.

        Returns:
            False if an equal link already existed (nothing inserted)
        """
        with self._use(conn) as c:
            cursor = c.execute(
                '''INSERT INTO login_methods (account_id, provider, identifier, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT DO NOTHING''',
                (account_id, provider.value, identifier, to_db_timestamp(created_at))
            )
            return cursor.rowcount > 0

    def get_account_id_by_login_method(
        self,
        provider: Provider,
        identifier: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[int]:
        with self._use(conn) as c:
            row = c.execute(
                '''SELECT a.id FROM accounts a
                   INNER JOIN login_methods lm ON lm.account_id = a.id
                   WHERE lm.provider = ? AND lm.identifier = ?''',
                (provider.value, identifier)
            ).fetchone()
            return row['id'] if row else None

    def list_login_methods(
        self,
        account_id: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> List[LoginMethod]:
        with self._use(conn) as c:
            rows = c.execute(
                'SELECT * FROM login_methods WHERE account_id = ? ORDER BY id',
                (account_id,)
            ).fetchall()
            return [
                LoginMethod(
                    id=row['id'],
                    account_id=row['account_id'],
                    provider=row['provider'],
                    identifier=row['identifier'],
                    created_at=row['created_at']
                )
                for row in rows
            ]

    # Email confirmation token operations
    def get_latest_confirmation(
        self,
        account_id: int,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[ConfirmationToken]:
        """The account's most recently issued token, stale or not."""
        with self._use(conn) as c:
            row = c.execute(
                '''SELECT * FROM email_confirmations
                   WHERE account_id = ?
                   ORDER BY id DESC
                   LIMIT 1''',
                (account_id,)
            ).fetchone()
            return _token_from_row(row) if row else None

    def get_confirmation_by_token(
        self,
        token: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> Optional[ConfirmationToken]:
        with self._use(conn) as c:
            row = c.execute(
                'SELECT * FROM email_confirmations WHERE token = ?', (token,)
            ).fetchone()
            return _token_from_row(row) if row else None

    def replace_confirmation(
        self,
        account_id: int,
        token: str,
        issued_at: datetime,
        expires_at: datetime,
        conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """
        Supersede the account's live token (if any) with a new one.

        Must run inside a transaction so the two statements apply together.

        Raises:
            sqlite3.IntegrityError: if another live token appeared concurrently
        """
        issued = to_db_timestamp(issued_at)
        with self._use(conn) as c:
            c.execute(
                '''UPDATE email_confirmations SET is_stale = TRUE
                   WHERE account_id = ? AND is_stale = FALSE''',
                (account_id,)
            )
            c.execute(
                '''INSERT INTO email_confirmations
                       (account_id, token, created_at, last_sent_at, expires_at, is_stale)
                   VALUES (?, ?, ?, ?, ?, FALSE)''',
                (account_id, token, issued, issued, to_db_timestamp(expires_at))
            )

    def mark_confirmation_stale(
        self,
        token: str,
        conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Mark a token as used; returns False if it was already stale."""
        with self._use(conn) as c:
            cursor = c.execute(
                '''UPDATE email_confirmations SET is_stale = TRUE
                   WHERE token = ? AND is_stale = FALSE''',
                (token,)
            )
            return cursor.rowcount > 0
