"""
Error taxonomy for the persistence layer.

Every store operation raises one of these instead of returning an error value.
Handlers catch them and turn them into chat messages.
"""


class StorageError(Exception):
    """Base class. `message` is safe to show in logs."""

    default_message = 'Storage error'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmail(StorageError):
    default_message = 'Email already in use'


class WrongPassword(StorageError):
    default_message = 'Incorrect password'


class NotFound(StorageError):
    default_message = 'Not found'


class UserNotFound(NotFound):
    default_message = 'User not found'


class DeckNotFound(NotFound):
    default_message = 'Deck not found'


class Unknown(StorageError):
    """Wraps an sqlite3 error that no operation classified."""

    default_message = 'Unknown storage error'
