import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from handlers.start import ask_to_sign_in, cancel, force_start
from utils.constants import CARDS_PER_DAY_MAX, DECK_TITLE_MAX, NewDeckState
from utils.session import current_user, get_storage
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import parse_cards_per_day


async def new_deck_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query

    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    context.user_data['new_deck'] = {}
    await safe_edit_text(query, "\u270f\ufe0f Name for the new deck:\n\n<i>/cancel to abort</i>")
    return NewDeckState.TITLE


async def receive_title(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    title = (update.message.text or '').strip()

    if not title:
        await safe_send_text(update.message, "\u26a0\ufe0f Deck name can't be empty. Try again:")
        return NewDeckState.TITLE

    if len(title) > DECK_TITLE_MAX:
        await safe_send_text(update.message, f"\u26a0\ufe0f Too long \u2014 {DECK_TITLE_MAX} characters max. Try again:")
        return NewDeckState.TITLE

    context.user_data.setdefault('new_deck', {})['title'] = title
    await safe_send_text(
        update.message,
        "\U0001f3af How many cards a day do you want to practice?",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton(str(n), callback_data=f'per_day_{n}') for n in (5, 10, 20, 50)
        ]]),
    )
    return NewDeckState.CARDS_PER_DAY


async def receive_cards_per_day_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    value = parse_cards_per_day(update.message.text, CARDS_PER_DAY_MAX)
    if value is None:
        await safe_send_text(update.message, f"\u26a0\ufe0f Send a number from 1 to {CARDS_PER_DAY_MAX}:")
        return NewDeckState.CARDS_PER_DAY

    context.user_data.setdefault('new_deck', {})['cards_per_day'] = value
    await _ask_icon(update.message)
    return NewDeckState.ICON


async def receive_cards_per_day_button(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    context.user_data.setdefault('new_deck', {})['cards_per_day'] = int(query.data.rsplit('_', 1)[1])
    await _ask_icon(query.message)
    return NewDeckState.ICON


async def receive_icon_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    icon = (update.message.text or '').strip()[:16]
    return await _create_deck(update.message, context, icon or None)


async def receive_icon_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    # Telegram file_id, sent back as-is when the deck is shown
    return await _create_deck(update.message, context, update.message.photo[-1].file_id)


async def skip_icon(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    return await _create_deck(query.message, context, None)


# ── private helpers ──────────────────────────────────────────

async def _ask_icon(message) -> None:
    await safe_send_text(
        message,
        "\U0001f3a8 Send an emoji or a photo to use as the deck icon.",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Skip", callback_data='icon_skip')
        ]]),
    )


async def _create_deck(message, context: ContextTypes.DEFAULT_TYPE, icon: str | None) -> int:
    user = current_user(context)
    draft = context.user_data.pop('new_deck', {})

    if not user or not draft.get('title'):
        await safe_send_text(message, "\u26a0\ufe0f Session expired \u2014 please start over.")
        return ConversationHandler.END

    deck = get_storage(context).decks.add_deck(
        user['id'], draft['title'], icon, draft.get('cards_per_day')
    )
    logging.info(f"Deck {deck['id']} created from chat")

    await safe_send_text(
        message,
        f"\u2705 Deck <b>{html.escape(deck['title'])}</b> created!\n\n<i>{deck['subtitle']}</i>",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton("\U0001f4dd Add cards", callback_data=f"add_card_{deck['id']}")],
            [InlineKeyboardButton("\U0001f4da My Decks", callback_data='my_decks')],
        ]),
    )
    return ConversationHandler.END


# ── ConversationHandler ───────────────────────────────────────

new_deck_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(new_deck_entry, pattern='^new_deck$')],
    per_message=False,
    states={
        NewDeckState.TITLE: [
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_title),
        ],
        NewDeckState.CARDS_PER_DAY: [
            CallbackQueryHandler(receive_cards_per_day_button, pattern=r'^per_day_\d+$'),
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_cards_per_day_text),
        ],
        NewDeckState.ICON: [
            CallbackQueryHandler(skip_icon, pattern='^icon_skip$'),
            MessageHandler(filters.PHOTO, receive_icon_photo),
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_icon_text),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
