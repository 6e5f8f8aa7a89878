import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

import utils.utils as utils
from handlers.manage import _show_deck_detail
from handlers.start import ask_to_sign_in, cancel, force_start
from utils.constants import AddCardState, CARD_SIDE_MAX, ID_PATTERN
from utils.session import current_user, get_storage, owned_deck
from utils.telegram_helpers import safe_edit_text, safe_send_text

_DONE_MARKUP = InlineKeyboardMarkup([[InlineKeyboardButton("\u2714 Done", callback_data='add_done')]])


async def add_card_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
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

    context.user_data['cur_deck_id'] = deck_id
    await safe_edit_text(
        query,
        f"\U0001f4dd Send me a card for <b>{html.escape(deck['title'])}</b>\n\n"
        "<i>Text: <code>front | back | notes</code> or two lines\n"
        "Photo: it becomes the front image, the caption is parsed like text</i>",
        reply_markup=_DONE_MARKUP,
    )
    return AddCardState.AWAITING_CONTENT


async def get_content(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    logging.info("Got card content")

    deck_id = context.user_data.get('cur_deck_id')
    if not deck_id:
        await safe_send_text(update.message, "\u26a0\ufe0f Session expired \u2014 please start over.")
        return ConversationHandler.END

    if update.message.photo:
        parsed = utils.parse_photo(update.message.photo[-1], update.message.caption)
    else:
        parsed = utils.parse_text(update.message.text or '')

        if not parsed['front']:
            await safe_send_text(update.message, "\u26a0\ufe0f Card can't be empty. Send some text:")
            return AddCardState.AWAITING_CONTENT

        if not parsed['back']:
            front_hint = html.escape(parsed['front'][:20])
            await safe_send_text(
                update.message,
                f"\u26a0\ufe0f Cards need two sides.\n\n"
                f"Use <code>|</code> to separate front from back:\n"
                f"<code>{front_hint} | meaning here</code>\n\n"
                f"Or send two lines:\n"
                f"<code>{front_hint}\nmeaning here</code>"
            )
            return AddCardState.AWAITING_CONTENT

    if len(parsed['front']) > CARD_SIDE_MAX or len(parsed['back']) > CARD_SIDE_MAX:
        await safe_send_text(
            update.message,
            f"\u26a0\ufe0f Too long \u2014 each side can be up to {CARD_SIDE_MAX} characters. Try again:"
        )
        return AddCardState.AWAITING_CONTENT

    storage = get_storage(context)
    storage.cards.add_card(
        deck_id,
        parsed['front'],
        parsed['back'],
        notes=parsed.get('notes'),
        front_image=parsed.get('front_image'),
    )
    total = storage.cards.count_cards_for_deck(deck_id)

    await safe_send_text(
        update.message,
        f"\u2705 Saved \u00b7 {total} card{'s' if total != 1 else ''} in this deck\n\n<i>Send another or tap Done</i>",
        reply_markup=_DONE_MARKUP,
    )
    return AddCardState.AWAITING_CONTENT


async def add_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()

    deck_id = context.user_data.get('cur_deck_id')
    await _show_deck_detail(query, context, deck_id)
    return ConversationHandler.END


# ── ConversationHandler ───────────────────────────────────────

add_card_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(add_card_entry, pattern=rf'^add_card_{ID_PATTERN}$')],
    per_message=False,
    states={
        AddCardState.AWAITING_CONTENT: [
            CallbackQueryHandler(add_done, pattern='^add_done$'),
            MessageHandler(filters.PHOTO, get_content),
            MessageHandler(filters.TEXT & ~filters.COMMAND, get_content),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
