import logging
from typing import Any

from database.database import Database
from database.errors import NotFound
from utils.ids import new_id
from utils.progress import to_utc_iso

logger = logging.getLogger(__name__)


class LocationCardStore:
    def __init__(self, db: Database):
        self.db = db

    def save_location_card(self, card: dict[str, Any]) -> dict[str, Any]:
        """
        card needs: title, question, answer, latitude, longitude, user_id, created_at.
        notes is optional. Coordinates are stored as given, no range check.
        created_at (ISO string or datetime, naive means local) is stored in UTC
        so the newest-first listing can sort on the column.
        """
        if card.get('latitude') is None or card.get('longitude') is None:
            raise ValueError('latitude and longitude are required')

        saved = {
            'id': new_id(),
            'title': card['title'],
            'question': card['question'],
            'answer': card['answer'],
            'notes': card.get('notes') or '',
            'latitude': float(card['latitude']),
            'longitude': float(card['longitude']),
            'user_id': card['user_id'],
            'created_at': to_utc_iso(card['created_at']),
        }
        with self.db.transaction() as conn:
            conn.execute(
                'INSERT INTO location_cards (id, title, question, answer, notes, latitude, longitude, '
                'user_id, created_at) '
                'VALUES (:id, :title, :question, :answer, :notes, :latitude, :longitude, '
                ':user_id, :created_at)',
                saved
            )
        logger.info(f"Saved location card {saved['id']} for user {saved['user_id']}")
        return saved

    def list_location_cards_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Most recent first."""
        with self.db.transaction() as conn:
            rows = conn.execute(
                'SELECT * FROM location_cards WHERE user_id = ? ORDER BY created_at DESC',
                (user_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def get_location_card(self, card_id: str) -> dict[str, Any]:
        with self.db.transaction() as conn:
            row = conn.execute('SELECT * FROM location_cards WHERE id = ?', (card_id,)).fetchone()
        if row is None:
            raise NotFound('Location card not found')
        return dict(row)

    def delete_location_card(self, card_id: str) -> int:
        with self.db.transaction() as conn:
            deleted = conn.execute('DELETE FROM location_cards WHERE id = ?', (card_id,)).rowcount
        logger.info(f"Deleted location card {card_id} ({deleted} row)")
        return deleted
