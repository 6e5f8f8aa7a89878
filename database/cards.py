import logging
from typing import Any

from database.database import Database
from database.errors import NotFound
from utils.ids import new_id

logger = logging.getLogger(__name__)


class CardStore:
    def __init__(self, db: Database):
        self.db = db

    def add_card(
        self,
        deck_id: str,
        front: str,
        back: str,
        notes: str | None = None,
        front_image: str | None = None,
        back_image: str | None = None,
    ) -> dict[str, Any]:
        card = {
            'id': new_id(),
            'front': front,
            'back': back,
            'notes': notes or '',
            'front_image': front_image,
            'back_image': back_image,
            'deck_id': deck_id,
        }
        with self.db.transaction() as conn:
            conn.execute(
                'INSERT INTO cards (id, front, back, notes, front_image, back_image, deck_id) '
                'VALUES (:id, :front, :back, :notes, :front_image, :back_image, :deck_id)',
                card
            )
        logger.info(f"Added card {card['id']} to deck {deck_id}")
        return card

    def list_cards_for_deck(self, deck_id: str) -> list[dict[str, Any]]:
        with self.db.transaction() as conn:
            rows = conn.execute(
                'SELECT * FROM cards WHERE deck_id = ? ORDER BY rowid',
                (deck_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def count_cards_for_deck(self, deck_id: str) -> int:
        with self.db.transaction() as conn:
            row = conn.execute('SELECT COUNT(*) AS cnt FROM cards WHERE deck_id = ?', (deck_id,)).fetchone()
            return row['cnt']

    def get_card(self, card_id: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute('SELECT * FROM cards WHERE id = ?', (card_id,)).fetchone()
        if row is None:
            raise NotFound('Card not found')
        return dict(row)

    def delete_card(self, card_id: str) -> int:
        """Returns the number of rows removed; 0 for an unknown id."""
        with self.db.transaction() as conn:
            deleted = conn.execute('DELETE FROM cards WHERE id = ?', (card_id,)).rowcount
        logger.info(f"Deleted card {card_id} ({deleted} row)")
        return deleted

    def delete_cards_for_decks(self, deck_ids: list[str]) -> int:
        if not deck_ids:
            return 0
        placeholders = ','.join('?' for _ in deck_ids)
        with self.db.transaction() as conn:
            return conn.execute(
                f'DELETE FROM cards WHERE deck_id IN ({placeholders})',
                list(deck_ids)
            ).rowcount
