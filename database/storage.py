"""
The persistence service handed to the bot.

Construct it once, `open()` it on start-up and `close()` it on shutdown:

    storage = Storage(DB_PATH).open()
    storage.decks.list_decks_for_user(user_id)
    storage.close()
"""

import logging
from datetime import datetime
from typing import Callable

from database.accounts import AccountStore
from database.cards import CardStore
from database.database import Database
from database.decks import DeckStore
from database.location_cards import LocationCardStore

logger = logging.getLogger(__name__)


class Storage:
    def __init__(self, path: str, clock: Callable[[], datetime] = datetime.now):
        self.db = Database(path)
        self.accounts = AccountStore(self.db, clock)
        self.cards = CardStore(self.db)
        self.decks = DeckStore(self.db, self.cards, clock)
        self.location_cards = LocationCardStore(self.db)

    def open(self) -> 'Storage':
        self.db.open()
        self.db.init_db()
        return self

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> 'Storage':
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def delete_user_and_all_data(self, user_id: str) -> dict[str, int]:
        """
        Remove a user with their decks and cards, children first, in one
        transaction. Location cards are left in place.
        """
        with self.db.transaction():
            deck_ids = self.decks.list_deck_ids_for_user(user_id)
            deleted_cards = self.cards.delete_cards_for_decks(deck_ids)
            deleted_decks = self.decks.delete_decks_for_user(user_id)
            deleted_users = self.accounts.delete_user_row(user_id)

        logger.info(
            f"Deleted user {user_id}: {deleted_decks} decks, {deleted_cards} cards"
        )
        return {
            'deleted_user_count': deleted_users,
            'deleted_deck_count': deleted_decks,
            'deleted_card_count': deleted_cards,
        }
