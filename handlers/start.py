import html
import logging

from telegram import Update, InlineKeyboardMarkup
from telegram.ext import ContextTypes, ConversationHandler

from utils.constants import MAIN_MENU_BUTTONS, WELCOME_BUTTONS
from utils.session import current_user, drop_secrets, forget_user, get_storage
from utils.telegram_helpers import safe_edit_text, safe_send_text


WELCOME_TEXT = (
    "\U0001f4da <b>Flashdeck</b>\n\n"
    "Build decks of flash cards, practice a few every day "
    "and pin questions to the places you visit."
)


def build_main_menu(context: ContextTypes.DEFAULT_TYPE) -> tuple[str, InlineKeyboardMarkup]:
    """
    Returns (message_text, markup) for the main menu.
    Text includes today's total across decks when the user has any.
    """
    user = current_user(context)
    decks = get_storage(context).decks.list_decks_for_user(user['id'])

    name = html.escape(user['display_name'] or user['email'])
    if not decks:
        text = f"\U0001f44b <b>{name}</b>\n\n<i>No decks yet \u2014 create your first one!</i>"
    else:
        done = sum(d['card_count_today'] for d in decks)
        total = sum(d['total_cards'] for d in decks)
        text = (
            f"\U0001f44b <b>{name}</b>\n\n"
            f"<i>today: {done}/{total} cards across {len(decks)} deck{'s' if len(decks) != 1 else ''}</i>"
        )

    return text, InlineKeyboardMarkup(MAIN_MENU_BUTTONS)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logging.info("Started /start")

    if current_user(context):
        text, markup = build_main_menu(context)
        await safe_send_text(update.message, text, reply_markup=markup)
        return

    await safe_send_text(update.message, WELCOME_TEXT, reply_markup=InlineKeyboardMarkup(WELCOME_BUTTONS))


async def ask_to_sign_in(update: Update) -> None:
    """Shown when a signed-out chat taps something that needs an account."""
    text = "\U0001f512 Please sign in first."
    markup = InlineKeyboardMarkup(WELCOME_BUTTONS)
    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)


_CONV_KEYS = (
    # auth flows
    'signup_email', 'signup_name', 'signin_email',
    # deck / card flows
    'new_deck', 'cur_deck_id', 'manage_deck_page', '_decks_cache',
    # practice flow
    'practice_deck_id', 'practice_cards', 'practice_index', 'practice_counted', 'practice_today',
    # places flow
    'new_location_card',
)


def _drop_conversation_state(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in _CONV_KEYS:
        context.user_data.pop(key, None)
    drop_secrets(context)


async def _reset_and_send_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Clear all in-progress conversation state and send a fresh main menu."""
    _drop_conversation_state(context)

    if not current_user(context):
        await safe_send_text(update.message, WELCOME_TEXT, reply_markup=InlineKeyboardMarkup(WELCOME_BUTTONS))
        return

    text, markup = build_main_menu(context)
    await safe_send_text(update.message, text, reply_markup=markup)


async def force_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """ConversationHandler fallback: abort current flow and show main menu."""
    await _reset_and_send_menu(update, context)
    return ConversationHandler.END


async def clear_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/clear: reset any stuck state and show a fresh main menu."""
    await _reset_and_send_menu(update, context)


async def cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """/cancel or a Cancel button inside any conversation."""
    _drop_conversation_state(context)

    if current_user(context):
        text, markup = build_main_menu(context)
    else:
        text, markup = WELCOME_TEXT, InlineKeyboardMarkup(WELCOME_BUTTONS)

    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)

    return ConversationHandler.END


async def main_menu(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Callback handler for the 'Menu' button (outside conversation)."""
    query = update.callback_query

    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    text, markup = build_main_menu(context)
    await safe_edit_text(query, text, reply_markup=markup)


async def logout(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = current_user(context)
    forget_user(context)
    if user:
        logging.info(f"User {user['id']} logged out")

    text = "\U0001f44b Logged out.\n\n" + WELCOME_TEXT
    markup = InlineKeyboardMarkup(WELCOME_BUTTONS)
    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=markup)
    else:
        await safe_send_text(update.message, text, reply_markup=markup)
