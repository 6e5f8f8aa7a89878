from datetime import datetime

import pytest

from database.storage import Storage


class FakeClock:
    """Stands in for datetime.now; tests move `now` to cross midnight."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 3, 10, 9, 30))


@pytest.fixture()
def storage(tmp_path, clock):
    """A fresh store on a temp SQLite file, closed after the test."""
    store = Storage(str(tmp_path / "test.db"), clock=clock).open()
    yield store
    store.close()


@pytest.fixture()
def user(storage):
    return storage.accounts.register('ann@example.com', 'secret1', 'Ann')
