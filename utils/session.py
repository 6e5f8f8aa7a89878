"""
Per-chat session helpers.

The logged-in user snapshot ({'id', 'email', 'display_name'}) lives in
`context.user_data['session']`, which PicklePersistence writes to disk, so a
restart keeps people signed in. The Storage object is put in `bot_data` at
start-up and is not persisted.

Passwords typed mid-conversation are held in `context.chat_data` instead,
which bot.py leaves out of persistence, so they never reach the pickle file.
"""

from typing import Any

from telegram.ext import ContextTypes

from database.errors import DeckNotFound, NotFound
from database.storage import Storage

SESSION_KEY = 'session'
STORAGE_KEY = 'storage'

SECRET_KEYS = ('signup_password', 'settings_current_password')


def get_storage(context: ContextTypes.DEFAULT_TYPE) -> Storage:
    return context.bot_data[STORAGE_KEY]


def current_user(context: ContextTypes.DEFAULT_TYPE) -> dict[str, Any] | None:
    return context.user_data.get(SESSION_KEY)


def remember_user(context: ContextTypes.DEFAULT_TYPE, user: dict[str, Any]) -> None:
    context.user_data[SESSION_KEY] = {
        'id': user['id'],
        'email': user['email'],
        'display_name': user['display_name'],
    }


def update_session(context: ContextTypes.DEFAULT_TYPE, **fields: Any) -> None:
    session = context.user_data.get(SESSION_KEY)
    if session is None:
        return
    context.user_data[SESSION_KEY] = {**session, **fields}


def forget_user(context: ContextTypes.DEFAULT_TYPE) -> None:
    context.user_data.clear()
    drop_secrets(context)


# ── Pending passwords ─────────────────────────────────────────

def stash_secret(context: ContextTypes.DEFAULT_TYPE, key: str, value: str) -> None:
    context.chat_data[key] = value


def pop_secret(context: ContextTypes.DEFAULT_TYPE, key: str) -> str:
    return context.chat_data.pop(key, '')


def drop_secrets(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in SECRET_KEYS:
        context.chat_data.pop(key, None)


# ── Ownership ─────────────────────────────────────────────────
# Callback buttons outlive sessions, so every id read from callback data is
# checked against the signed-in user. A row owned by someone else is treated
# exactly like a missing one.

def owned_deck(context: ContextTypes.DEFAULT_TYPE, deck_id: str | None) -> dict[str, Any] | None:
    user = current_user(context)
    if not user or not deck_id:
        return None
    try:
        deck = get_storage(context).decks.get_deck(deck_id)
    except DeckNotFound:
        return None
    return deck if deck['user_id'] == user['id'] else None


def owned_card(context: ContextTypes.DEFAULT_TYPE, card_id: str) -> dict[str, Any] | None:
    """A card belongs to whoever owns its deck."""
    try:
        card = get_storage(context).cards.get_card(card_id)
    except NotFound:
        return None
    return card if owned_deck(context, card['deck_id']) else None


def owned_place(context: ContextTypes.DEFAULT_TYPE, card_id: str) -> dict[str, Any] | None:
    user = current_user(context)
    if not user:
        return None
    try:
        card = get_storage(context).location_cards.get_location_card(card_id)
    except NotFound:
        return None
    return card if card['user_id'] == user['id'] else None
