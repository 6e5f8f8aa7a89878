"""
Deck store.

Each deck keeps a `card_count_today` counter stamped with `last_updated`. When
the stored calendar day is not today the counter is rolled back to zero before
it is read or incremented. `subtitle` and `progress` are recomputed from the
live card count on every read; the columns only cache the last values written.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from database.cards import CardStore
from database.database import Database
from database.errors import DeckNotFound
from utils.constants import DEFAULT_ICON
from utils.ids import new_id
from utils.progress import compute_progress, format_subtitle, needs_reset

logger = logging.getLogger(__name__)


class DeckStore:
    def __init__(self, db: Database, cards: CardStore, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.cards = cards
        self.clock = clock

    def add_deck(self, user_id: str, title: str, icon: Any = None, cards_per_day: int | None = None) -> dict[str, Any]:
        # Only plain strings (URI, emoji, Telegram file id) are persisted
        icon_value = icon if isinstance(icon, str) and icon else DEFAULT_ICON
        now = self.clock().isoformat()

        deck = {
            'id': new_id(),
            'title': title,
            'subtitle': format_subtitle(0, 0),
            'progress': 0.0,
            'icon': icon_value,
            'cards_per_day': cards_per_day,
            'user_id': user_id,
            'card_count_today': 0,
            'last_updated': now,
        }
        with self.db.transaction() as conn:
            conn.execute(
                'INSERT INTO decks (id, title, subtitle, progress, icon, cards_per_day, user_id, '
                'card_count_today, last_updated) '
                'VALUES (:id, :title, :subtitle, :progress, :icon, :cards_per_day, :user_id, '
                ':card_count_today, :last_updated)',
                deck
            )
        logger.info(f"Created deck {deck['id']} for user {user_id}")
        return {**deck, 'cards': [], 'total_cards': 0}

    def list_decks_for_user(self, user_id: str) -> list[dict[str, Any]]:
        with self.db.transaction() as conn:
            rows = conn.execute(
                'SELECT * FROM decks WHERE user_id = ? ORDER BY rowid',
                (user_id,)
            ).fetchall()
            return [self._with_live_counts(dict(row)) for row in rows]

    def get_deck(self, deck_id: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute('SELECT * FROM decks WHERE id = ?', (deck_id,)).fetchone()
            if row is None:
                raise DeckNotFound()
            return self._with_live_counts(dict(row))

    def increment_card_count_today(self, deck_id: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute(
                'SELECT card_count_today, last_updated FROM decks WHERE id = ?',
                (deck_id,)
            ).fetchone()
            if row is None:
                raise DeckNotFound()

            now = self.clock()
            count = row['card_count_today'] or 0
            if needs_reset(row['last_updated'], now):
                count = 0

            new_count = count + 1
            total = self.cards.count_cards_for_deck(deck_id)
            progress = compute_progress(new_count, total)

            conn.execute(
                'UPDATE decks SET card_count_today = ?, last_updated = ?, subtitle = ?, progress = ? '
                'WHERE id = ?',
                (new_count, now.isoformat(), format_subtitle(new_count, total), progress, deck_id)
            )

        return {'new_count': new_count, 'progress': progress}

    def delete_deck(self, deck_id: str) -> dict[str, int]:
        # Cards first: they reference the deck row
        with self.db.transaction() as conn:
            deleted_cards = self.cards.delete_cards_for_decks([deck_id])
            conn.execute('DELETE FROM decks WHERE id = ?', (deck_id,))

        logger.info(f"Deleted deck {deck_id} with {deleted_cards} cards")
        return {'deleted_card_count': deleted_cards}

    def list_deck_ids_for_user(self, user_id: str) -> list[str]:
        with self.db.transaction() as conn:
            rows = conn.execute('SELECT id FROM decks WHERE user_id = ?', (user_id,)).fetchall()
            return [row['id'] for row in rows]

    def delete_decks_for_user(self, user_id: str) -> int:
        with self.db.transaction() as conn:
            return conn.execute('DELETE FROM decks WHERE user_id = ?', (user_id,)).rowcount

    # ── private helpers ──────────────────────────────────────────

    def _with_live_counts(self, deck: dict[str, Any]) -> dict[str, Any]:
        """Apply the daily reset, then attach cards and the derived fields."""
        now = self.clock()
        if needs_reset(deck['last_updated'], now):
            deck['card_count_today'] = 0
            deck['last_updated'] = now.isoformat()
            with self.db.transaction() as conn:
                conn.execute(
                    'UPDATE decks SET card_count_today = 0, last_updated = ? WHERE id = ?',
                    (deck['last_updated'], deck['id'])
                )
            logger.debug(f"Daily reset for deck {deck['id']}")

        cards = self.cards.list_cards_for_deck(deck['id'])
        total = len(cards)
        count = deck['card_count_today'] or 0

        deck['card_count_today'] = count
        deck['cards'] = cards
        deck['total_cards'] = total
        deck['subtitle'] = format_subtitle(count, total)
        deck['progress'] = compute_progress(count, total)
        return deck
