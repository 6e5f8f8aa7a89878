import html
import logging
from datetime import datetime

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from database.errors import DuplicateEmail, NotFound, WrongPassword
from handlers.start import WELCOME_TEXT, ask_to_sign_in, cancel, force_start, logout
from utils.constants import MENU_BUTTON, SettingsState, WELCOME_BUTTONS
from utils.session import current_user, forget_user, get_storage, pop_secret, stash_secret, update_session
from utils.telegram_helpers import safe_delete, safe_edit_text, safe_send_text
from utils.validators import validate_email, validate_name, validate_password

DELETE_WORD = 'DELETE'

_SETTINGS_BUTTONS = InlineKeyboardMarkup([
    [
        InlineKeyboardButton("\U0001f464 Name", callback_data='set_name'),
        InlineKeyboardButton("\u2709\ufe0f Email", callback_data='set_email'),
        InlineKeyboardButton("\U0001f511 Password", callback_data='set_password'),
    ],
    [InlineKeyboardButton("\U0001f6aa Log out", callback_data='logout')],
    [InlineKeyboardButton("\U0001f5d1\ufe0f Delete account", callback_data='delete_account')],
    MENU_BUTTON,
])

_BACK_MARKUP = InlineKeyboardMarkup([[InlineKeyboardButton("\u2699\ufe0f Settings", callback_data='settings')]])


def _member_since(created_at: str | None) -> str:
    if not created_at:
        return '\u2014'
    try:
        return datetime.fromisoformat(created_at).strftime('%b %d, %Y')
    except ValueError:
        return created_at


_GONE_TEXT = "\u26a0\ufe0f Your account no longer exists.\n\n" + WELCOME_TEXT


async def _account_gone(target, context: ContextTypes.DEFAULT_TYPE) -> int:
    """The session outlived its account (deleted from another chat)."""
    forget_user(context)
    await safe_send_text(target, _GONE_TEXT, reply_markup=InlineKeyboardMarkup(WELCOME_BUTTONS))
    return ConversationHandler.END


async def _show_settings(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = current_user(context)
    try:
        details = get_storage(context).accounts.get_details(user['id'])
    except NotFound:
        forget_user(context)
        await safe_edit_text(query, _GONE_TEXT, reply_markup=InlineKeyboardMarkup(WELCOME_BUTTONS))
        return

    text = (
        f"\u2699\ufe0f <b>Settings</b>\n\n"
        f"\U0001f464 {html.escape(details['display_name'] or '')}\n"
        f"\u2709\ufe0f {html.escape(details['email'])}\n"
        f"\U0001f4c5 Member since {_member_since(details['created_at'])}"
    )
    await safe_edit_text(query, text, reply_markup=_SETTINGS_BUTTONS)


async def settings_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    await _show_settings(query, context)


# ── Change name ───────────────────────────────────────────────

async def set_name_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    await safe_edit_text(query, "\U0001f464 Send your new name:\n\n<i>/cancel to abort</i>")
    return SettingsState.NEW_NAME


async def receive_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return ConversationHandler.END

    name = (update.message.text or '').strip()
    error = validate_name(name)
    if error:
        await safe_send_text(update.message, f"\u26a0\ufe0f {error}. Try again:")
        return SettingsState.NEW_NAME

    try:
        get_storage(context).accounts.update_username(user['id'], name)
    except NotFound:
        return await _account_gone(update.message, context)
    update_session(context, display_name=name)

    await safe_send_text(update.message, f"\u2714\ufe0f Name changed to <b>{html.escape(name)}</b>", reply_markup=_BACK_MARKUP)
    return ConversationHandler.END


# ── Change email ──────────────────────────────────────────────

async def set_email_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    await safe_edit_text(query, "\u2709\ufe0f Send your new email:\n\n<i>/cancel to abort</i>")
    return SettingsState.NEW_EMAIL


async def receive_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return ConversationHandler.END

    email = (update.message.text or '').strip().lower()
    error = validate_email(email)
    if error:
        await safe_send_text(update.message, f"\u26a0\ufe0f {error}. Try again:")
        return SettingsState.NEW_EMAIL

    try:
        get_storage(context).accounts.update_email(user['id'], email)
    except DuplicateEmail:
        await safe_send_text(update.message, "\u26a0\ufe0f That email is already in use. Try another:")
        return SettingsState.NEW_EMAIL
    except NotFound:
        return await _account_gone(update.message, context)

    update_session(context, email=email)
    await safe_send_text(update.message, f"\u2714\ufe0f Email changed to <b>{html.escape(email)}</b>", reply_markup=_BACK_MARKUP)
    return ConversationHandler.END


# ── Change password ───────────────────────────────────────────

async def set_password_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    await safe_edit_text(query, "\U0001f511 Send your current password:\n\n<i>/cancel to abort</i>")
    return SettingsState.CURRENT_PASSWORD


async def receive_current_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    current = update.message.text or ''
    await safe_delete(update.message)
    target = (update.effective_chat.id, context.bot)

    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END
    if not current:
        await safe_send_text(target, "\u26a0\ufe0f Current password is required:")
        return SettingsState.CURRENT_PASSWORD

    stash_secret(context, 'settings_current_password', current)
    await safe_send_text(target, "\U0001f511 Now the new password (6+ characters):")
    return SettingsState.NEW_PASSWORD


async def receive_new_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    new_password = update.message.text or ''
    await safe_delete(update.message)
    target = (update.effective_chat.id, context.bot)

    user = current_user(context)
    if not user:
        pop_secret(context, 'settings_current_password')
        await ask_to_sign_in(update)
        return ConversationHandler.END

    error = validate_password(new_password)
    if error:
        await safe_send_text(target, f"\u26a0\ufe0f {error}. Try again:")
        return SettingsState.NEW_PASSWORD

    current = pop_secret(context, 'settings_current_password')
    try:
        get_storage(context).accounts.update_password(user['id'], current, new_password)
    except WrongPassword:
        await safe_send_text(target, "\u26a0\ufe0f Current password is incorrect. Send it again:")
        return SettingsState.CURRENT_PASSWORD
    except NotFound:
        return await _account_gone(target, context)

    await safe_send_text(target, "\u2714\ufe0f Password changed", reply_markup=_BACK_MARKUP)
    return ConversationHandler.END


# ── Delete account ────────────────────────────────────────────

async def delete_account_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return ConversationHandler.END

    await query.answer()
    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f <b>Delete account?</b>\n\n"
        f"All your decks and cards will be removed. This cannot be undone.\n\n"
        f"Type <code>{DELETE_WORD}</code> to confirm, or /cancel.",
    )
    return SettingsState.CONFIRM_DELETE


async def receive_delete_confirmation(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return ConversationHandler.END

    if (update.message.text or '').strip() != DELETE_WORD:
        await safe_send_text(update.message, f"Please type '{DELETE_WORD}' to confirm account deletion, or /cancel.")
        return SettingsState.CONFIRM_DELETE

    result = get_storage(context).delete_user_and_all_data(user['id'])
    forget_user(context)
    logging.info(f"Account {user['id']} deleted from chat: {result}")

    await safe_send_text(
        update.message,
        "\U0001f44b Your account has been deleted.\n\n" + WELCOME_TEXT,
        reply_markup=InlineKeyboardMarkup(WELCOME_BUTTONS),
    )
    return ConversationHandler.END


async def logout_and_end(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """/logout typed while a settings prompt is open."""
    await logout(update, context)
    return ConversationHandler.END


# ── ConversationHandler ───────────────────────────────────────

settings_handler = ConversationHandler(
    entry_points=[
        CallbackQueryHandler(set_name_entry, pattern='^set_name$'),
        CallbackQueryHandler(set_email_entry, pattern='^set_email$'),
        CallbackQueryHandler(set_password_entry, pattern='^set_password$'),
        CallbackQueryHandler(delete_account_entry, pattern='^delete_account$'),
    ],
    per_message=False,
    states={
        SettingsState.NEW_NAME: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_name)],
        SettingsState.NEW_EMAIL: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_email)],
        SettingsState.CURRENT_PASSWORD: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_current_password)],
        SettingsState.NEW_PASSWORD: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_new_password)],
        SettingsState.CONFIRM_DELETE: [MessageHandler(filters.TEXT & ~filters.COMMAND, receive_delete_confirmation)],
    },
    fallbacks=[
        CommandHandler('cancel', cancel),
        CommandHandler('start', force_start),
        CommandHandler('logout', logout_and_end),
    ],
)
