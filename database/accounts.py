import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable

from database.database import Database
from database.errors import DuplicateEmail, NotFound, UserNotFound, WrongPassword
from utils.hashing import hash_password, needs_rehash, verify_password
from utils.ids import new_id

logger = logging.getLogger(__name__)


def _public(row: sqlite3.Row) -> dict[str, Any]:
    return {'id': row['id'], 'email': row['email'], 'display_name': row['name']}


class AccountStore:
    def __init__(self, db: Database, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def register(self, email: str, password: str, display_name: str) -> dict[str, Any]:
        if not email or not email.strip():
            raise ValueError('email must not be empty')

        user_id = new_id()
        created_at = self.clock().isoformat()

        with self.db.transaction() as conn:
            try:
                conn.execute(
                    'INSERT INTO users (id, email, name, password_hash, created_at) '
                    'VALUES (?, ?, ?, ?, ?)',
                    (user_id, email, display_name, hash_password(password), created_at)
                )
            except sqlite3.IntegrityError as e:
                if 'UNIQUE' in str(e).upper():
                    logger.warning(f"Registration rejected, email in use: {email}")
                    raise DuplicateEmail() from e
                raise

        logger.info(f"Created user: {user_id}")
        return {'id': user_id, 'email': email, 'display_name': display_name}

    def login(self, email: str, password: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute('SELECT * FROM users WHERE email = ?', (email,)).fetchone()
            if row is None:
                raise UserNotFound()
            if not verify_password(password, row['password_hash']):
                logger.warning(f"Wrong password for user {row['id']}")
                raise WrongPassword()

            if needs_rehash(row['password_hash']):
                conn.execute(
                    'UPDATE users SET password_hash = ? WHERE id = ?',
                    (hash_password(password), row['id'])
                )
                logger.info(f"Rehashed password for user {row['id']}")
        return _public(row)

    def update_username(self, user_id: str, new_name: str) -> bool:
        with self.db.transaction() as conn:
            cursor = conn.execute('UPDATE users SET name = ? WHERE id = ?', (new_name, user_id))
            if cursor.rowcount == 0:
                raise NotFound('No user found with that ID')
        logger.info(f"Renamed user {user_id}")
        return True

    def update_email(self, user_id: str, new_email: str) -> bool:
        with self.db.transaction() as conn:
            taken = conn.execute(
                'SELECT 1 FROM users WHERE email = ? AND id != ?',
                (new_email, user_id)
            ).fetchone()
            if taken:
                raise DuplicateEmail()

            cursor = conn.execute('UPDATE users SET email = ? WHERE id = ?', (new_email, user_id))
            if cursor.rowcount == 0:
                raise NotFound('No user found with that ID')
        logger.info(f"Changed email for user {user_id}")
        return True

    def update_password(self, user_id: str, current_password: str, new_password: str) -> bool:
        with self.db.transaction() as conn:
            row = conn.execute(
                'SELECT password_hash FROM users WHERE id = ?',
                (user_id,)
            ).fetchone()
            if row is None:
                raise UserNotFound()
            if not verify_password(current_password, row['password_hash']):
                raise WrongPassword('Current password is incorrect')

            conn.execute(
                'UPDATE users SET password_hash = ? WHERE id = ?',
                (hash_password(new_password), user_id)
            )
        logger.info(f"Changed password for user {user_id}")
        return True

    def get_details(self, user_id: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute(
                'SELECT id, email, name, created_at FROM users WHERE id = ?',
                (user_id,)
            ).fetchone()
        if row is None:
            raise NotFound('User not found')
        return {**_public(row), 'created_at': row['created_at']}

    def delete_user_row(self, user_id: str) -> int:
        """Raw row delete. Use Storage.delete_user_and_all_data for accounts."""
        with self.db.transaction() as conn:
            cursor = conn.execute('DELETE FROM users WHERE id = ?', (user_id,))
            return cursor.rowcount
