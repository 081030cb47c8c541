"""
SQLite database for the local identity and document backend.

Thread-safe storage for accounts, sessions and JSON documents.
"""

import json
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import bcrypt
from loguru import logger


@dataclass
class Account:
    """
    Identity account.

    Attributes:
        uid: Unique account identifier (UUID)
        email: Unique email address
        password_hash: Bcrypt hashed password
        created_at: Account creation timestamp
        email_verified: Whether the email address was verified
    """
    uid: str
    email: str
    password_hash: str
    created_at: datetime
    email_verified: bool = False


class UserDatabase:
    """
    Thread-safe account, session and document database.

    All operations are protected by threading.RLock for thread safety.
    """

    def __init__(self, db_path: Path):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_db(self):
        """Create tables if they don't exist."""
        with self._lock:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    uid TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    email_verified INTEGER DEFAULT 0
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    jti TEXT PRIMARY KEY,
                    uid TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    FOREIGN KEY (uid) REFERENCES accounts(uid)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    doc_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, doc_id)
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_uid ON sessions(uid)")

            conn.commit()
            conn.close()

            logger.info(f"User database initialized: {self.db_path}")

    # ========================================================================
    # Account Operations
    # ========================================================================

    def create_account(self, email: str, password: str) -> Account:
        """
        Create account with hashed password.

        Args:
            email: Unique email address
            password: Plain text password (will be hashed)

        Returns:
            Created Account

        Raises:
            sqlite3.IntegrityError: If the email already exists
        """
        with self._lock:
            password_hash = bcrypt.hashpw(
                password.encode('utf-8'),
                bcrypt.gensalt()
            ).decode('utf-8')

            account = Account(
                uid=uuid.uuid4().hex,
                email=email,
                password_hash=password_hash,
                created_at=datetime.now(timezone.utc),
            )

            conn = self._connect()
            try:
                conn.execute("""
                    INSERT INTO accounts (uid, email, password_hash, created_at, email_verified)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    account.uid,
                    account.email,
                    account.password_hash,
                    account.created_at.isoformat(),
                    1 if account.email_verified else 0,
                ))
                conn.commit()
            finally:
                conn.close()

            logger.info(f"Account created: {email} ({account.uid})")
            return account

    def get_account_by_email(self, email: str) -> Optional[Account]:
        """
        Get account by email.

        Args:
            email: Email to search for

        Returns:
            Account if found, None otherwise
        """
        return self._get_account("email", email)

    def get_account_by_id(self, uid: str) -> Optional[Account]:
        """
        Get account by ID.

        Args:
            uid: Account ID to search for

        Returns:
            Account if found, None otherwise
        """
        return self._get_account("uid", uid)

    def _get_account(self, column: str, value: str) -> Optional[Account]:
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT uid, email, password_hash, created_at, email_verified "
                f"FROM accounts WHERE {column} = ?",
                (value,)
            )
            row = cursor.fetchone()
            conn.close()

            if not row:
                return None

            return Account(
                uid=row[0],
                email=row[1],
                password_hash=row[2],
                created_at=datetime.fromisoformat(row[3]),
                email_verified=bool(row[4]),
            )

    def verify_password(self, account: Account, password: str) -> bool:
        """
        Verify password against the account's hash.

        Args:
            account: Account object
            password: Plain text password to verify

        Returns:
            True if password matches, False otherwise
        """
        return bcrypt.checkpw(
            password.encode('utf-8'),
            account.password_hash.encode('utf-8')
        )

    def delete_account(self, uid: str) -> bool:
        """
        Delete account and all of its sessions.

        Args:
            uid: Account ID

        Returns:
            True if an account was deleted
        """
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute("DELETE FROM sessions WHERE uid = ?", (uid,))
            cursor.execute("DELETE FROM accounts WHERE uid = ?", (uid,))
            deleted = cursor.rowcount > 0
            conn.commit()
            conn.close()

            if deleted:
                logger.info(f"Account deleted: {uid}")
            return deleted

    # ========================================================================
    # Session Operations
    # ========================================================================

    def create_session(self, jti: str, uid: str, expires_at: datetime) -> None:
        """
        Record an issued session.

        Args:
            jti: Session token ID (jti claim)
            uid: Account that owns the session
            expires_at: Session expiration timestamp
        """
        with self._lock:
            conn = self._connect()
            conn.execute("""
                INSERT INTO sessions (jti, uid, created_at, expires_at)
                VALUES (?, ?, ?, ?)
            """, (
                jti,
                uid,
                datetime.now(timezone.utc).isoformat(),
                expires_at.isoformat(),
            ))
            conn.commit()
            conn.close()

    def session_exists(self, jti: str) -> bool:
        """Check whether a session was issued and not revoked."""
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM sessions WHERE jti = ?", (jti,))
            row = cursor.fetchone()
            conn.close()
            return row is not None

    def delete_session(self, jti: str) -> bool:
        """
        Delete session by token ID (logout).

        Args:
            jti: Session token ID

        Returns:
            True if a session was deleted
        """
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute("DELETE FROM sessions WHERE jti = ?", (jti,))
            deleted = cursor.rowcount > 0
            conn.commit()
            conn.close()
            return deleted

    def delete_sessions_for_account(self, uid: str) -> int:
        """
        Revoke every session of an account.

        Args:
            uid: Account ID

        Returns:
            Number of sessions deleted
        """
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute("DELETE FROM sessions WHERE uid = ?", (uid,))
            count = cursor.rowcount
            conn.commit()
            conn.close()

            if count > 0:
                logger.info(f"Revoked {count} session(s) for {uid}")
            return count

    def cleanup_expired_sessions(self) -> int:
        """
        Delete expired sessions.

        Returns:
            Number of sessions deleted
        """
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM sessions WHERE expires_at < ?",
                (datetime.now(timezone.utc).isoformat(),)
            )
            count = cursor.rowcount
            conn.commit()
            conn.close()

            if count > 0:
                logger.info(f"Cleaned up {count} expired sessions")
            return count

    # ========================================================================
    # Document Operations
    # ========================================================================

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Read a JSON document.

        Args:
            collection: Collection name (e.g. "users")
            doc_id: Document ID

        Returns:
            Decoded document, or None if it does not exist
        """
        with self._lock:
            conn = self._connect()
            cursor = conn.cursor()
            cursor.execute(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id)
            )
            row = cursor.fetchone()
            conn.close()

            if not row:
                return None
            return json.loads(row[0])

    def put_document(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """
        Write a JSON document, replacing any existing one.

        Args:
            collection: Collection name
            doc_id: Document ID
            data: JSON-serializable document contents
        """
        with self._lock:
            conn = self._connect()
            conn.execute("""
                INSERT INTO documents (collection, doc_id, data, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (collection, doc_id)
                DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
            """, (
                collection,
                doc_id,
                json.dumps(data),
                datetime.now(timezone.utc).isoformat(),
            ))
            conn.commit()
            conn.close()
