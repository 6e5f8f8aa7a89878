import html
import logging
from datetime import datetime, timezone
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from handlers.start import ask_to_sign_in, cancel, force_start
from utils.constants import LocationCardState, MENU_BUTTON
from utils.session import current_user, get_storage, owned_place
from utils.telegram_helpers import safe_edit_text, safe_send_text
from utils.utils import truncate

TITLE_MAX = 60

_SHARE_HINT = (
    "\U0001f4cd Share a location (\U0001f4ce \u2192 Location) and I'll pin a question to it."
)


def _places_markup(cards: list[dict[str, Any]]) -> InlineKeyboardMarkup:
    buttons = [
        [InlineKeyboardButton(f"\U0001f4cd {truncate(c['title'] or '', 40)}", callback_data=f"place_open_{c['id']}")]
        for c in cards
    ]
    buttons.append(MENU_BUTTON)
    return InlineKeyboardMarkup(buttons)


async def places_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """'Places' button: list the user's location cards, newest first."""
    query = update.callback_query
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return

    await query.answer()
    cards = get_storage(context).location_cards.list_location_cards_for_user(user['id'])

    if not cards:
        text = f"\U0001f4cd <b>Places</b>\n\n<i>No place cards yet.</i>\n\n{_SHARE_HINT}"
    else:
        text = f"\U0001f4cd <b>Places</b> \u00b7 {len(cards)}\n\n<i>{_SHARE_HINT}</i>"

    await safe_edit_text(query, text, reply_markup=_places_markup(cards))


_MISSING_MARKUP = InlineKeyboardMarkup([[InlineKeyboardButton('Places', callback_data='places')], MENU_BUTTON])


async def _open_owned(update: Update, context: ContextTypes.DEFAULT_TYPE) -> dict[str, Any] | None:
    """
    Resolve the place card named in the callback data for the signed-in user.
    Answers the query; on a miss the message already says so and None comes back.
    """
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return None

    await query.answer()
    card = owned_place(context, query.data.rsplit('_', 1)[1])
    if card is None:
        await safe_edit_text(query, "Place card not found.", reply_markup=_MISSING_MARKUP)
    return card


async def place_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    card = await _open_owned(update, context)
    if card is None:
        return

    await safe_edit_text(
        update.callback_query,
        f"\U0001f4cd <b>{html.escape(card['title'] or '')}</b>\n\n"
        f"\u2753 {html.escape(card['question'] or '')}",
        reply_markup=_place_markup(card['id'], revealed=False),
    )


async def place_reveal(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    card = await _open_owned(update, context)
    if card is None:
        return

    notes = f"\n\n\U0001f5d2 <i>{html.escape(card['notes'])}</i>" if card['notes'] else ''
    await safe_edit_text(
        update.callback_query,
        f"\U0001f4cd <b>{html.escape(card['title'] or '')}</b>\n\n"
        f"\u2753 {html.escape(card['question'] or '')}\n\n"
        f"\U0001f4a1 {html.escape(card['answer'] or '')}"
        f"{notes}\n\n"
        f"<i>{card['latitude']:.5f}, {card['longitude']:.5f}</i>",
        reply_markup=_place_markup(card['id'], revealed=True),
    )


async def place_map(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    card = await _open_owned(update, context)
    if card is None:
        return

    await context.bot.send_location(
        chat_id=update.callback_query.message.chat_id,
        latitude=card['latitude'],
        longitude=card['longitude'],
    )


async def place_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    card = await _open_owned(update, context)
    if card is None:
        return

    await safe_edit_text(
        update.callback_query,
        f"\U0001f5d1\ufe0f Delete <b>{html.escape(card['title'] or '')}</b>? This cannot be undone.",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f"place_delete_yes_{card['id']}"),
                InlineKeyboardButton('Cancel', callback_data=f"place_open_{card['id']}"),
            ]
        ]),
    )


async def place_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return

    card = owned_place(context, query.data.rsplit('_', 1)[1])
    if card is None:
        await query.answer()
        await safe_edit_text(query, "Place card not found.", reply_markup=_MISSING_MARKUP)
        return

    get_storage(context).location_cards.delete_location_card(card['id'])
    logging.info(f"User {user['id']} deleted place card {card['id']}")
    await places_entry(update, context)


def _place_markup(card_id: str, revealed: bool) -> InlineKeyboardMarkup:
    first_row = [InlineKeyboardButton('\U0001f5fa Map', callback_data=f'place_map_{card_id}')]
    if not revealed:
        first_row.insert(0, InlineKeyboardButton('\U0001f440 Answer', callback_data=f'place_reveal_{card_id}'))
    return InlineKeyboardMarkup([
        first_row,
        [
            InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f'place_delete_{card_id}'),
            InlineKeyboardButton('Places', callback_data='places'),
        ],
    ])


# ── New place card conversation ──────────────────────────────

async def location_received(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """A shared location starts a new place card."""
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    location = update.message.location
    context.user_data['new_location_card'] = {
        'latitude': location.latitude,
        'longitude': location.longitude,
    }
    logging.info("Got location for a place card")

    await safe_send_text(
        update.message,
        "\U0001f4cd Got it! Give this place a title:\n\n<i>/cancel to abort</i>",
    )
    return LocationCardState.TITLE


async def receive_title(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    title = (update.message.text or '').strip()
    if not title:
        await safe_send_text(update.message, "\u26a0\ufe0f Title can't be empty. Try again:")
        return LocationCardState.TITLE
    if len(title) > TITLE_MAX:
        await safe_send_text(update.message, f"\u26a0\ufe0f Too long \u2014 {TITLE_MAX} characters max. Try again:")
        return LocationCardState.TITLE

    context.user_data.setdefault('new_location_card', {})['title'] = title
    await safe_send_text(update.message, "\u2753 What's the question?")
    return LocationCardState.QUESTION


async def receive_question(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    question = (update.message.text or '').strip()
    if not question:
        await safe_send_text(update.message, "\u26a0\ufe0f Question can't be empty. Try again:")
        return LocationCardState.QUESTION

    context.user_data.setdefault('new_location_card', {})['question'] = question
    await safe_send_text(update.message, "\U0001f4a1 And the answer?")
    return LocationCardState.ANSWER


async def receive_answer(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    answer = (update.message.text or '').strip()
    if not answer:
        await safe_send_text(update.message, "\u26a0\ufe0f Answer can't be empty. Try again:")
        return LocationCardState.ANSWER

    context.user_data.setdefault('new_location_card', {})['answer'] = answer
    await safe_send_text(
        update.message,
        "\U0001f5d2 Any notes?",
        reply_markup=InlineKeyboardMarkup([[InlineKeyboardButton('Skip', callback_data='place_notes_skip')]]),
    )
    return LocationCardState.NOTES


async def receive_notes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    return await _save(update.message, context, (update.message.text or '').strip())


async def skip_notes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    return await _save(query.message, context, '')


async def _save(message, context: ContextTypes.DEFAULT_TYPE, notes: str) -> int:
    user = current_user(context)
    draft = context.user_data.pop('new_location_card', {})

    if not user or 'answer' not in draft:
        await safe_send_text(message, "\u26a0\ufe0f Session expired \u2014 please start over.")
        return ConversationHandler.END

    card = get_storage(context).location_cards.save_location_card({
        **draft,
        'notes': notes,
        'user_id': user['id'],
        'created_at': datetime.now(timezone.utc),
    })

    await safe_send_text(
        message,
        f"\u2705 Pinned <b>{html.escape(card['title'])}</b> to this place.",
        reply_markup=InlineKeyboardMarkup([
            [InlineKeyboardButton('\U0001f4cd Places', callback_data='places')],
            MENU_BUTTON,
        ]),
    )
    return ConversationHandler.END


new_place_handler = ConversationHandler(
    entry_points=[MessageHandler(filters.LOCATION, location_received)],
    per_message=False,
    states={
        LocationCardState.TITLE: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_title)],
        LocationCardState.QUESTION: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_question)],
        LocationCardState.ANSWER: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_answer)],
        LocationCardState.NOTES: [
            CallbackQueryHandler(skip_notes, pattern='^place_notes_skip$'),
            MessageHandler(filters.TEXT & ~filters.COMMAND, receive_notes),
        ],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
