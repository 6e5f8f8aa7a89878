"""
Practice flow: flip through a deck's cards one at a time.

Flipping a card to its back counts it toward today's total for the deck,
once per card per session. Prev / Next move without counting.
"""

import html
import logging
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    CommandHandler, CallbackQueryHandler,
)

from database.errors import DeckNotFound
from handlers.start import ask_to_sign_in, force_start
from utils.constants import ID_PATTERN, PracticeState
from utils.progress import format_subtitle, progress_bar
from utils.session import current_user, get_storage, owned_deck
from utils.telegram_helpers import safe_edit_text, safe_replace, safe_replace_with_photo, safe_send_text


async def practice_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Entry point: user taps 'Practice' on a deck."""
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    deck_id = query.data.rsplit('_', 1)[1]

    deck = owned_deck(context, deck_id)
    if deck is None:
        await safe_edit_text(query, "\u26a0\ufe0f That deck no longer exists.")
        return ConversationHandler.END

    if not deck['cards']:
        await safe_edit_text(
            query,
            "\U0001f4ed This deck has no cards yet.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton("\U0001f4dd Add card", callback_data=f'add_card_{deck_id}')],
                [InlineKeyboardButton("My Decks", callback_data='my_decks')],
            ]),
        )
        return ConversationHandler.END

    context.user_data['practice_deck_id'] = deck_id
    context.user_data['practice_cards'] = deck['cards']
    context.user_data['practice_index'] = 0
    context.user_data['practice_counted'] = []
    context.user_data['practice_today'] = (deck['card_count_today'], deck['progress'])

    await _render(query, context, flipped=False)
    return PracticeState.SHOWING_FRONT


async def flip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Show the back; count the card the first time it is flipped."""
    query = update.callback_query
    await query.answer()

    cards = context.user_data.get('practice_cards', [])
    index = context.user_data.get('practice_index', 0)
    counted = context.user_data.setdefault('practice_counted', [])

    if index >= len(cards):
        return await _finish_practice(query, context)

    card = cards[index]
    if card['id'] not in counted:
        deck_id = context.user_data.get('practice_deck_id')
        try:
            result = get_storage(context).decks.increment_card_count_today(deck_id)
        except DeckNotFound:
            await safe_edit_text(query, "\u26a0\ufe0f That deck no longer exists.")
            _cleanup_practice_data(context)
            return ConversationHandler.END

        counted.append(card['id'])
        context.user_data['practice_today'] = (result['new_count'], result['progress'])
        logging.info(f"Deck {deck_id}: {result['new_count']} cards today")

    await _render(query, context, flipped=True)
    return PracticeState.SHOWING_BACK


async def unflip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    await _render(query, context, flipped=False)
    return PracticeState.SHOWING_FRONT


async def next_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    cards = context.user_data.get('practice_cards', [])
    index = context.user_data.get('practice_index', 0)

    if index + 1 >= len(cards):
        return await _finish_practice(query, context)

    context.user_data['practice_index'] = index + 1
    await _render(query, context, flipped=False)
    return PracticeState.SHOWING_FRONT


async def prev_card(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    index = context.user_data.get('practice_index', 0)
    context.user_data['practice_index'] = max(0, index - 1)
    await _render(query, context, flipped=False)
    return PracticeState.SHOWING_FRONT


async def stop_practice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """User stops mid-deck. Works for both callback button and /cancel command."""
    seen = len(context.user_data.get('practice_counted', []))
    deck_id = context.user_data.get('practice_deck_id', '')
    _cleanup_practice_data(context)

    text = f"\u23f9 Stopped after {seen} card{'s' if seen != 1 else ''}"
    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f4da Back to deck", callback_data=f'deck_open_{deck_id}')],
        [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')],
    ])

    if update.callback_query:
        await update.callback_query.answer()
        await safe_replace(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


# ============================================================
# Private helpers
# ============================================================

def _status_line(context: ContextTypes.DEFAULT_TYPE) -> str:
    cards = context.user_data.get('practice_cards', [])
    index = context.user_data.get('practice_index', 0)
    count, progress = context.user_data.get('practice_today', (0, 0.0))
    return (
        f"{index + 1}/{len(cards)}  \u00b7  "
        f"{progress_bar(progress)} {format_subtitle(count, len(cards))}"
    )


def _buttons(context: ContextTypes.DEFAULT_TYPE, flipped: bool) -> InlineKeyboardMarkup:
    cards = context.user_data.get('practice_cards', [])
    index = context.user_data.get('practice_index', 0)

    nav: list[InlineKeyboardButton] = []
    if index > 0:
        nav.append(InlineKeyboardButton("\u2190", callback_data='practice_prev'))
    if flipped:
        nav.append(InlineKeyboardButton("\U0001f504 Front", callback_data='practice_unflip'))
    else:
        nav.append(InlineKeyboardButton("\U0001f440 Flip", callback_data='practice_flip'))
    nav.append(InlineKeyboardButton(
        "\u2192" if index + 1 < len(cards) else "\U0001f3c1 Finish",
        callback_data='practice_next',
    ))

    return InlineKeyboardMarkup([
        nav,
        [InlineKeyboardButton("\u23f9 Stop", callback_data='practice_stop')],
    ])


def _card_text(card: dict[str, Any], flipped: bool) -> str:
    if not flipped:
        return html.escape(card['front'] or '')
    text = f"{html.escape(card['front'] or '')}\n\n\U0001f4a1 {html.escape(card['back'] or '')}"
    if card.get('notes'):
        text += f"\n\n\U0001f5d2 <i>{html.escape(card['notes'])}</i>"
    return text


async def _render(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, flipped: bool) -> None:
    cards = context.user_data.get('practice_cards', [])
    index = context.user_data.get('practice_index', 0)
    card = cards[index]

    text = f"{_card_text(card, flipped)}\n\n<i>{_status_line(context)}</i>"
    markup = _buttons(context, flipped)

    image = card.get('back_image') if flipped and card.get('back_image') else card.get('front_image')
    if image:
        await safe_replace_with_photo(query, image, text, reply_markup=markup)
    else:
        await safe_replace(query, text, reply_markup=markup)


async def _finish_practice(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Show practice summary and end conversation."""
    deck_id = context.user_data.get('practice_deck_id', '')
    count, progress = context.user_data.get('practice_today', (0, 0.0))
    total = len(context.user_data.get('practice_cards', []))

    _cleanup_practice_data(context)

    text = (
        f"\U0001f389 Deck done!\n\n"
        f"{progress_bar(progress)}  <i>{format_subtitle(count, total)}</i>"
    )
    markup = InlineKeyboardMarkup([
        [InlineKeyboardButton("\U0001f501 Again", callback_data=f'practice_{deck_id}'),
         InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
    ])

    await safe_replace(query, text, reply_markup=markup)
    return ConversationHandler.END


def _cleanup_practice_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in ('practice_deck_id', 'practice_cards', 'practice_index', 'practice_counted', 'practice_today'):
        context.user_data.pop(key, None)


# ── ConversationHandler ───────────────────────────────────────

_NAV = [
    CallbackQueryHandler(next_card, pattern='^practice_next$'),
    CallbackQueryHandler(prev_card, pattern='^practice_prev$'),
    CallbackQueryHandler(stop_practice, pattern='^practice_stop$'),
]

practice_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(practice_entry, pattern=rf'^practice_{ID_PATTERN}$')],
    per_message=False,
    states={
        PracticeState.SHOWING_FRONT: [
            CallbackQueryHandler(flip, pattern='^practice_flip$'),
            *_NAV,
        ],
        PracticeState.SHOWING_BACK: [
            CallbackQueryHandler(unflip, pattern='^practice_unflip$'),
            *_NAV,
        ],
    },
    fallbacks=[CommandHandler('cancel', stop_practice), CommandHandler('start', force_start)],
    allow_reentry=True,
)
