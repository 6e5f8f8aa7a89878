"""
Tests for the database package.

Uses a real SQLite file in a pytest tmp_path so every test gets an isolated DB.
No Telegram objects, no async: pure store logic.
"""
import sqlite3
import threading
from datetime import datetime, timedelta, timezone

import pytest
from argon2 import PasswordHasher

from database.database import Database
from database.errors import (
    DeckNotFound, DuplicateEmail, NotFound, StorageError, Unknown, UserNotFound, WrongPassword,
)
from database.storage import Storage
from utils.constants import DEFAULT_ICON
from utils.hashing import needs_rehash


# ── Helpers ───────────────────────────────────────────────────

def _raw(storage: Storage, sql: str, params=()):
    """Run a raw query against the test DB and return dict rows."""
    with storage.db.transaction() as conn:
        return [dict(r) for r in conn.execute(sql, params).fetchall()]


def _place(user_id: str, title: str, created_at: str, **extra):
    card = {
        'title': title,
        'question': 'Where?',
        'answer': 'Here',
        'latitude': 52.52,
        'longitude': 13.405,
        'user_id': user_id,
        'created_at': created_at,
    }
    card.update(extra)
    return card


# ── Schema ────────────────────────────────────────────────────

class TestSchema:
    def test_creates_four_tables(self, storage):
        rows = _raw(storage, "SELECT name FROM sqlite_master WHERE type = 'table'")
        names = {r['name'] for r in rows}
        assert {'users', 'decks', 'cards', 'location_cards'} <= names

    def test_init_is_repeatable_and_keeps_data(self, tmp_path, clock):
        path = str(tmp_path / "again.db")
        with Storage(path, clock=clock) as first:
            first.accounts.register('a@b.com', 'secret1', 'Ann')

        with Storage(path, clock=clock) as second:
            second.db.init_db()
            assert second.accounts.login('a@b.com', 'secret1')['display_name'] == 'Ann'

    def test_users_columns(self, storage):
        columns = {r['name'] for r in _raw(storage, "PRAGMA table_info(users)")}
        assert columns == {'id', 'email', 'name', 'password_hash', 'created_at'}

    def test_open_unreachable_path_raises_unknown(self, tmp_path):
        with pytest.raises(Unknown):
            Database(str(tmp_path / "missing" / "dir" / "x.db")).open()


# ── Accounts ──────────────────────────────────────────────────

class TestAccounts:
    def test_register_returns_public_fields(self, storage):
        user = storage.accounts.register('a@b.com', 'secret1', 'Ann')
        assert set(user) == {'id', 'email', 'display_name'}
        assert user['email'] == 'a@b.com'
        assert user['display_name'] == 'Ann'

    def test_password_not_stored_in_plaintext(self, storage, user):
        row = _raw(storage, "SELECT password_hash FROM users WHERE id = ?", (user['id'],))[0]
        assert 'secret1' not in row['password_hash']
        assert row['password_hash'].startswith('$argon2id$')

    def test_register_empty_email_rejected(self, storage):
        with pytest.raises(ValueError):
            storage.accounts.register('  ', 'secret1', 'Ann')

    def test_duplicate_email(self, storage, user):
        with pytest.raises(DuplicateEmail):
            storage.accounts.register('ann@example.com', 'other12', 'Impostor')

        # first user's row is unaffected
        assert storage.accounts.login('ann@example.com', 'secret1')['id'] == user['id']
        assert len(_raw(storage, "SELECT id FROM users")) == 1

    def test_login_ok(self, storage, user):
        logged_in = storage.accounts.login('ann@example.com', 'secret1')
        assert logged_in == user

    def test_login_wrong_password(self, storage, user):
        with pytest.raises(WrongPassword):
            storage.accounts.login('ann@example.com', 'nope')

    def test_login_unknown_email(self, storage):
        with pytest.raises(UserNotFound):
            storage.accounts.login('ghost@example.com', 'secret1')

    def test_login_upgrades_weak_hash(self, storage):
        weak = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1).hash('secret1')
        with storage.db.transaction() as conn:
            conn.execute(
                "INSERT INTO users (id, email, name, password_hash, created_at) "
                "VALUES ('old', 'old@b.com', 'Old', ?, '2020-01-01T00:00:00')",
                (weak,)
            )
        assert storage.accounts.login('old@b.com', 'secret1')['id'] == 'old'

        upgraded = _raw(storage, "SELECT password_hash FROM users WHERE id = 'old'")[0]['password_hash']
        assert upgraded != weak
        assert not needs_rehash(upgraded)
        assert storage.accounts.login('old@b.com', 'secret1')['id'] == 'old'

    def test_login_unreadable_hash_is_wrong_password(self, storage):
        with storage.db.transaction() as conn:
            conn.execute(
                "INSERT INTO users (id, email, name, password_hash, created_at) "
                "VALUES ('bad', 'bad@b.com', 'Bad', 'not-a-hash', '2020-01-01T00:00:00')"
            )
        with pytest.raises(WrongPassword):
            storage.accounts.login('bad@b.com', 'secret1')

    def test_update_username(self, storage, user):
        assert storage.accounts.update_username(user['id'], 'Annie') is True
        assert storage.accounts.get_details(user['id'])['display_name'] == 'Annie'

    def test_update_username_unknown_user(self, storage):
        with pytest.raises(NotFound):
            storage.accounts.update_username('nobody', 'X')

    def test_update_email(self, storage, user):
        storage.accounts.update_email(user['id'], 'new@example.com')
        assert storage.accounts.login('new@example.com', 'secret1')['id'] == user['id']

    def test_update_email_to_own_email_is_allowed(self, storage, user):
        assert storage.accounts.update_email(user['id'], 'ann@example.com') is True

    def test_update_email_taken_by_other(self, storage, user):
        storage.accounts.register('bob@example.com', 'secret1', 'Bob')
        with pytest.raises(DuplicateEmail):
            storage.accounts.update_email(user['id'], 'bob@example.com')

    def test_update_email_unknown_user(self, storage):
        with pytest.raises(NotFound):
            storage.accounts.update_email('nobody', 'x@y.com')

    def test_update_password(self, storage, user):
        storage.accounts.update_password(user['id'], 'secret1', 'better22')
        with pytest.raises(WrongPassword):
            storage.accounts.login('ann@example.com', 'secret1')
        assert storage.accounts.login('ann@example.com', 'better22')['id'] == user['id']

    def test_update_password_wrong_current(self, storage, user):
        with pytest.raises(WrongPassword):
            storage.accounts.update_password(user['id'], 'guess', 'better22')
        # unchanged
        assert storage.accounts.login('ann@example.com', 'secret1')

    def test_update_password_unknown_user(self, storage):
        with pytest.raises(UserNotFound):
            storage.accounts.update_password('nobody', 'a', 'b')

    def test_get_details(self, storage, user, clock):
        details = storage.accounts.get_details(user['id'])
        assert details['email'] == 'ann@example.com'
        assert details['created_at'] == clock.now.isoformat()

    def test_get_details_unknown(self, storage):
        with pytest.raises(NotFound):
            storage.accounts.get_details('nobody')

    def test_specific_errors_are_not_found(self):
        assert issubclass(UserNotFound, NotFound)
        assert issubclass(DeckNotFound, NotFound)
        assert issubclass(NotFound, StorageError)


# ── Decks ─────────────────────────────────────────────────────

class TestDecks:
    def test_add_deck_initial_state(self, storage, user, clock):
        deck = storage.decks.add_deck(user['id'], 'Spanish', None, 10)
        assert deck['card_count_today'] == 0
        assert deck['subtitle'] == 'today: 0/0 cards'
        assert deck['progress'] == 0
        assert deck['cards'] == []
        assert deck['cards_per_day'] == 10
        assert deck['last_updated'] == clock.now.isoformat()

    def test_non_string_icon_stored_as_default(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', {'uri': 'asset:1'}, 5)
        assert deck['icon'] == DEFAULT_ICON
        assert storage.decks.get_deck(deck['id'])['icon'] == DEFAULT_ICON

    def test_string_icon_kept(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', '\U0001f1ea\U0001f1f8', 5)
        assert storage.decks.get_deck(deck['id'])['icon'] == '\U0001f1ea\U0001f1f8'

    def test_list_is_per_user_and_in_creation_order(self, storage, user):
        other = storage.accounts.register('bob@example.com', 'secret1', 'Bob')
        storage.decks.add_deck(user['id'], 'A', None, 5)
        storage.decks.add_deck(other['id'], 'Not mine', None, 5)
        storage.decks.add_deck(user['id'], 'B', None, 5)

        titles = [d['title'] for d in storage.decks.list_decks_for_user(user['id'])]
        assert titles == ['A', 'B']

    def test_list_empty(self, storage, user):
        assert storage.decks.list_decks_for_user(user['id']) == []

    def test_progress_matches_count_over_total(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        for i in range(4):
            storage.cards.add_card(deck['id'], f'q{i}', f'a{i}')
        storage.decks.increment_card_count_today(deck['id'])

        listed = storage.decks.list_decks_for_user(user['id'])[0]
        assert listed['total_cards'] == 4
        assert listed['progress'] == pytest.approx(0.25)
        assert listed['subtitle'] == 'today: 1/4 cards'

    def test_progress_zero_without_cards(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        result = storage.decks.increment_card_count_today(deck['id'])
        assert result == {'new_count': 1, 'progress': 0.0}
        assert storage.decks.get_deck(deck['id'])['progress'] == 0

    def test_derived_fields_follow_live_card_count(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.cards.add_card(deck['id'], 'q', 'a')
        storage.decks.increment_card_count_today(deck['id'])
        storage.cards.add_card(deck['id'], 'q2', 'a2')

        # cached columns still say 1/1, reads recompute
        fresh = storage.decks.get_deck(deck['id'])
        assert fresh['subtitle'] == 'today: 1/2 cards'
        assert fresh['progress'] == pytest.approx(0.5)

    def test_increment_unknown_deck(self, storage):
        with pytest.raises(DeckNotFound):
            storage.decks.increment_card_count_today('missing')

    def test_get_deck_unknown(self, storage):
        with pytest.raises(DeckNotFound):
            storage.decks.get_deck('missing')

    def test_increment_persists(self, storage, user, clock):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.cards.add_card(deck['id'], 'q', 'a')
        clock.now += timedelta(hours=2)
        storage.decks.increment_card_count_today(deck['id'])

        row = _raw(storage, "SELECT * FROM decks WHERE id = ?", (deck['id'],))[0]
        assert row['card_count_today'] == 1
        assert row['last_updated'] == clock.now.isoformat()
        assert row['subtitle'] == 'today: 1/1 cards'

    # ── Daily rollover ───────────────────────────────────────

    def test_rollover_on_list(self, storage, user, clock):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.cards.add_card(deck['id'], 'q', 'a')
        with storage.db.transaction() as conn:
            conn.execute(
                "UPDATE decks SET card_count_today = 5, last_updated = ? WHERE id = ?",
                ((clock.now - timedelta(days=1)).isoformat(), deck['id'])
            )

        listed = storage.decks.list_decks_for_user(user['id'])[0]
        assert listed['card_count_today'] == 0
        assert listed['subtitle'] == 'today: 0/1 cards'

        # the reset is persisted
        row = _raw(storage, "SELECT card_count_today, last_updated FROM decks WHERE id = ?", (deck['id'],))[0]
        assert row['card_count_today'] == 0
        assert row['last_updated'] == clock.now.isoformat()

    def test_rollover_on_increment(self, storage, user, clock):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        with storage.db.transaction() as conn:
            conn.execute(
                "UPDATE decks SET card_count_today = 5, last_updated = ? WHERE id = ?",
                ((clock.now - timedelta(days=1)).isoformat(), deck['id'])
            )

        assert storage.decks.increment_card_count_today(deck['id'])['new_count'] == 1

    def test_rollover_just_after_midnight(self, storage, user, clock):
        clock.now = datetime(2024, 3, 10, 23, 59)
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.decks.increment_card_count_today(deck['id'])
        storage.decks.increment_card_count_today(deck['id'])

        clock.now = datetime(2024, 3, 11, 0, 1)
        assert storage.decks.get_deck(deck['id'])['card_count_today'] == 0

    def test_no_rollover_same_day(self, storage, user, clock):
        clock.now = datetime(2024, 3, 10, 0, 1)
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.decks.increment_card_count_today(deck['id'])

        clock.now = datetime(2024, 3, 10, 23, 59)
        assert storage.decks.increment_card_count_today(deck['id'])['new_count'] == 2

    def test_missing_last_updated_resets(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        with storage.db.transaction() as conn:
            conn.execute("UPDATE decks SET card_count_today = 3, last_updated = NULL WHERE id = ?", (deck['id'],))
        assert storage.decks.get_deck(deck['id'])['card_count_today'] == 0

    # ── Delete ───────────────────────────────────────────────

    def test_delete_deck_removes_cards(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        for i in range(3):
            storage.cards.add_card(deck['id'], f'q{i}', f'a{i}')

        result = storage.decks.delete_deck(deck['id'])
        assert result == {'deleted_card_count': 3}
        assert storage.cards.list_cards_for_deck(deck['id']) == []
        with pytest.raises(DeckNotFound):
            storage.decks.get_deck(deck['id'])

    def test_delete_deck_leaves_other_decks(self, storage, user):
        keep = storage.decks.add_deck(user['id'], 'Keep', None, 5)
        gone = storage.decks.add_deck(user['id'], 'Gone', None, 5)
        storage.cards.add_card(keep['id'], 'q', 'a')
        storage.cards.add_card(gone['id'], 'q', 'a')

        storage.decks.delete_deck(gone['id'])
        assert [d['title'] for d in storage.decks.list_decks_for_user(user['id'])] == ['Keep']
        assert storage.cards.count_cards_for_deck(keep['id']) == 1

    def test_delete_missing_deck_is_noop(self, storage):
        assert storage.decks.delete_deck('missing') == {'deleted_card_count': 0}


# ── Cards ─────────────────────────────────────────────────────

class TestCards:
    def test_add_card_defaults_notes(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        card = storage.cards.add_card(deck['id'], 'Hola', 'Hello')
        assert card['notes'] == ''
        assert storage.cards.get_card(card['id'])['notes'] == ''

    def test_add_card_with_images(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        card = storage.cards.add_card(deck['id'], 'f', 'b', 'n', front_image='fid1', back_image='fid2')
        stored = storage.cards.get_card(card['id'])
        assert stored['front_image'] == 'fid1'
        assert stored['back_image'] == 'fid2'
        assert stored['notes'] == 'n'

    def test_list_in_insertion_order(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        for front in ('one', 'two', 'three'):
            storage.cards.add_card(deck['id'], front, 'x')
        assert [c['front'] for c in storage.cards.list_cards_for_deck(deck['id'])] == ['one', 'two', 'three']

    def test_count(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        assert storage.cards.count_cards_for_deck(deck['id']) == 0
        storage.cards.add_card(deck['id'], 'q', 'a')
        assert storage.cards.count_cards_for_deck(deck['id']) == 1

    def test_get_card_unknown(self, storage):
        with pytest.raises(NotFound):
            storage.cards.get_card('missing')

    def test_delete_card_twice(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        card = storage.cards.add_card(deck['id'], 'q', 'a')
        assert storage.cards.delete_card(card['id']) == 1
        assert storage.cards.delete_card(card['id']) == 0


# ── Location cards ────────────────────────────────────────────

class TestLocationCards:
    def test_save_and_get(self, storage, user):
        saved = storage.location_cards.save_location_card(_place(user['id'], 'Gate', '2024-03-10T10:00:00'))
        card = storage.location_cards.get_location_card(saved['id'])
        assert card['title'] == 'Gate'
        assert card['notes'] == ''
        assert card['latitude'] == pytest.approx(52.52)

    def test_no_range_check(self, storage, user):
        saved = storage.location_cards.save_location_card(
            _place(user['id'], 'Nowhere', '2024-03-10T10:00:00', latitude=123.0, longitude=-500)
        )
        assert saved['longitude'] == -500.0

    def test_coordinates_required(self, storage, user):
        with pytest.raises(ValueError):
            storage.location_cards.save_location_card(
                _place(user['id'], 'X', '2024-03-10T10:00:00', latitude=None)
            )

    def test_list_newest_first(self, storage, user):
        storage.location_cards.save_location_card(_place(user['id'], 'old', '2024-01-01T08:00:00'))
        storage.location_cards.save_location_card(_place(user['id'], 'new', '2024-03-01T08:00:00'))
        storage.location_cards.save_location_card(_place(user['id'], 'mid', '2024-02-01T08:00:00'))

        titles = [c['title'] for c in storage.location_cards.list_location_cards_for_user(user['id'])]
        assert titles == ['new', 'mid', 'old']

    def test_created_at_stored_in_utc(self, storage, user):
        saved = storage.location_cards.save_location_card(
            _place(user['id'], 'Kyiv', '2024-03-10T10:00:00+02:00')
        )
        card = storage.location_cards.get_location_card(saved['id'])
        assert card['created_at'] == '2024-03-10T08:00:00.000000+00:00'

    def test_list_newest_first_across_offsets(self, storage, user):
        # As text '10:00+05:00' sorts after '06:00+00:00', but it is an hour earlier
        storage.location_cards.save_location_card(_place(user['id'], 'east', '2024-03-10T10:00:00+05:00'))
        storage.location_cards.save_location_card(_place(user['id'], 'west', '2024-03-10T06:00:00+00:00'))
        storage.location_cards.save_location_card(
            _place(user['id'], 'obj', datetime(2024, 3, 10, 5, 30, tzinfo=timezone.utc))
        )

        titles = [c['title'] for c in storage.location_cards.list_location_cards_for_user(user['id'])]
        assert titles == ['west', 'obj', 'east']

    def test_bad_created_at_rejected(self, storage, user):
        with pytest.raises(ValueError):
            storage.location_cards.save_location_card(_place(user['id'], 'X', 'yesterday'))
        assert storage.location_cards.list_location_cards_for_user(user['id']) == []

    def test_delete(self, storage, user):
        saved = storage.location_cards.save_location_card(_place(user['id'], 'X', '2024-03-10T10:00:00'))
        assert storage.location_cards.delete_location_card(saved['id']) == 1
        assert storage.location_cards.delete_location_card(saved['id']) == 0
        with pytest.raises(NotFound):
            storage.location_cards.get_location_card(saved['id'])


# ── Cascade delete ────────────────────────────────────────────

class TestCascade:
    def _populate(self, storage, user):
        d1 = storage.decks.add_deck(user['id'], 'D1', None, 5)
        d2 = storage.decks.add_deck(user['id'], 'D2', None, 5)
        storage.cards.add_card(d1['id'], 'q', 'a')
        storage.cards.add_card(d2['id'], 'q', 'a')
        storage.cards.add_card(d2['id'], 'q2', 'a2')
        storage.location_cards.save_location_card(_place(user['id'], 'Pin', '2024-03-10T10:00:00'))
        return d1, d2

    def test_deletes_user_decks_and_cards(self, storage, user):
        d1, d2 = self._populate(storage, user)

        result = storage.delete_user_and_all_data(user['id'])
        assert result == {'deleted_user_count': 1, 'deleted_deck_count': 2, 'deleted_card_count': 3}
        assert storage.decks.list_decks_for_user(user['id']) == []
        assert storage.cards.list_cards_for_deck(d1['id']) == []
        with pytest.raises(NotFound):
            storage.accounts.get_details(user['id'])

    def test_location_cards_are_kept(self, storage, user):
        self._populate(storage, user)
        before = storage.location_cards.list_location_cards_for_user(user['id'])

        storage.delete_user_and_all_data(user['id'])
        assert storage.location_cards.list_location_cards_for_user(user['id']) == before

    def test_other_users_untouched(self, storage, user):
        other = storage.accounts.register('bob@example.com', 'secret1', 'Bob')
        deck = storage.decks.add_deck(other['id'], 'Bob deck', None, 5)
        storage.cards.add_card(deck['id'], 'q', 'a')
        self._populate(storage, user)

        storage.delete_user_and_all_data(user['id'])
        assert storage.cards.count_cards_for_deck(deck['id']) == 1
        assert storage.accounts.login('bob@example.com', 'secret1')

    def test_repeat_is_noop(self, storage, user):
        storage.delete_user_and_all_data(user['id'])
        result = storage.delete_user_and_all_data(user['id'])
        assert result == {'deleted_user_count': 0, 'deleted_deck_count': 0, 'deleted_card_count': 0}

    def test_failure_rolls_back_everything(self, storage, user, monkeypatch):
        d1, _ = self._populate(storage, user)

        def fail(user_id):
            raise RuntimeError('disk on fire')

        monkeypatch.setattr(storage.accounts, 'delete_user_row', fail)
        with pytest.raises(RuntimeError):
            storage.delete_user_and_all_data(user['id'])

        assert len(storage.decks.list_decks_for_user(user['id'])) == 2
        assert storage.cards.count_cards_for_deck(d1['id']) == 1


# ── Transactions ──────────────────────────────────────────────

class TestTransactions:
    def test_sqlite_error_wrapped_as_unknown(self, storage):
        with pytest.raises(Unknown) as exc:
            with storage.db.transaction() as conn:
                conn.execute("SELECT * FROM no_such_table")
        assert isinstance(exc.value.__cause__, sqlite3.Error)

    def test_rollback_on_error(self, storage):
        with pytest.raises(RuntimeError):
            with storage.db.transaction() as conn:
                conn.execute(
                    "INSERT INTO users (id, email, name, password_hash) VALUES ('x', 'x@y.z', 'X', 'h')"
                )
                raise RuntimeError('boom')
        assert _raw(storage, "SELECT id FROM users") == []

    def test_nested_joins_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.db.transaction() as outer:
                with storage.db.transaction() as inner:
                    assert inner is outer
                    inner.execute(
                        "INSERT INTO users (id, email, name, password_hash) VALUES ('x', 'x@y.z', 'X', 'h')"
                    )
                raise RuntimeError('after inner finished')
        assert _raw(storage, "SELECT id FROM users") == []

    def test_closed_database_raises_unknown(self, storage):
        storage.close()
        with pytest.raises(Unknown):
            storage.accounts.login('a@b.com', 'secret1')

    def test_concurrent_increments_serialize(self, storage, user):
        deck = storage.decks.add_deck(user['id'], 'D', None, 5)
        storage.cards.add_card(deck['id'], 'q', 'a')

        def work():
            for _ in range(10):
                storage.decks.increment_card_count_today(deck['id'])

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert storage.decks.get_deck(deck['id'])['card_count_today'] == 40


# ── End to end ────────────────────────────────────────────────

def test_register_deck_card_increment_scenario(storage):
    user = storage.accounts.register('a@b.com', 'secret1', 'Ann')
    deck = storage.decks.add_deck(user['id'], 'Spanish', None, 10)
    storage.cards.add_card(deck['id'], 'Hola', 'Hello')
    storage.decks.increment_card_count_today(deck['id'])

    decks = storage.decks.list_decks_for_user(user['id'])
    assert len(decks) == 1
    assert decks[0]['subtitle'] == 'today: 1/1 cards'
    assert decks[0]['progress'] == 1.0
