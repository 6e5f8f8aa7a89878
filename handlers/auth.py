import html
import logging

from telegram import Update
from telegram.ext import (
    ContextTypes, ConversationHandler,
    MessageHandler, CommandHandler, CallbackQueryHandler, filters,
)

from database.errors import DuplicateEmail, UserNotFound, WrongPassword
from handlers.start import build_main_menu, cancel, force_start
from utils.constants import SignInState, SignUpState
from utils.session import drop_secrets, get_storage, pop_secret, remember_user, stash_secret
from utils.telegram_helpers import safe_delete, safe_edit_text, safe_send_text
from utils.validators import (
    validate_confirm_password, validate_email, validate_name, validate_password,
)

_CANCEL_HINT = "\n\n<i>/cancel to abort</i>"


def _clear_auth_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for key in ('signup_email', 'signup_name', 'signin_email'):
        context.user_data.pop(key, None)
    drop_secrets(context)


# ── Sign up ───────────────────────────────────────────────────

async def sign_up_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    _clear_auth_data(context)

    await safe_edit_text(query, "\U0001f4dd <b>Sign up</b>\n\nWhat's your email?" + _CANCEL_HINT)
    return SignUpState.EMAIL


async def sign_up_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    email = (update.message.text or '').strip().lower()

    error = validate_email(email)
    if error:
        await safe_send_text(update.message, f"\u26a0\ufe0f {error}. Try again:")
        return SignUpState.EMAIL

    context.user_data['signup_email'] = email
    await safe_send_text(update.message, "\U0001f464 What should I call you?")
    return SignUpState.NAME


async def sign_up_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    name = (update.message.text or '').strip()

    error = validate_name(name)
    if error:
        await safe_send_text(update.message, f"\u26a0\ufe0f {error}. Try again:")
        return SignUpState.NAME

    context.user_data['signup_name'] = name
    await safe_send_text(
        update.message,
        "\U0001f511 Choose a password (6+ characters).\n<i>I'll delete your message right after.</i>"
    )
    return SignUpState.PASSWORD


async def sign_up_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    password = update.message.text or ''
    await safe_delete(update.message)

    error = validate_password(password)
    if error:
        await safe_send_text((update.effective_chat.id, context.bot), f"\u26a0\ufe0f {error}. Try again:")
        return SignUpState.PASSWORD

    stash_secret(context, 'signup_password', password)
    await safe_send_text((update.effective_chat.id, context.bot), "\U0001f511 Type it once more:")
    return SignUpState.CONFIRM_PASSWORD


async def sign_up_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    confirm = update.message.text or ''
    await safe_delete(update.message)
    target = (update.effective_chat.id, context.bot)

    password = pop_secret(context, 'signup_password')
    error = validate_confirm_password(password, confirm)
    if error:
        await safe_send_text(target, f"\u26a0\ufe0f {error}. Choose a password again:")
        return SignUpState.PASSWORD

    email = context.user_data.get('signup_email')
    name = context.user_data.get('signup_name')

    try:
        user = get_storage(context).accounts.register(email, password, name)
    except DuplicateEmail:
        await safe_send_text(target, "\u26a0\ufe0f That email is already in use. Send a different email:")
        return SignUpState.EMAIL

    _clear_auth_data(context)
    remember_user(context, user)
    logging.info(f"Signed up user {user['id']}")

    text, markup = build_main_menu(context)
    await safe_send_text(target, f"\u2705 Welcome, {html.escape(name)}!\n\n" + text, reply_markup=markup)
    return ConversationHandler.END


# ── Sign in ───────────────────────────────────────────────────

async def sign_in_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    query = update.callback_query
    await query.answer()
    _clear_auth_data(context)

    await safe_edit_text(query, "\U0001f511 <b>Sign in</b>\n\nYour email:" + _CANCEL_HINT)
    return SignInState.EMAIL


async def sign_in_email(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    email = (update.message.text or '').strip().lower()

    error = validate_email(email)
    if error:
        await safe_send_text(update.message, f"\u26a0\ufe0f {error}. Try again:")
        return SignInState.EMAIL

    context.user_data['signin_email'] = email
    await safe_send_text(update.message, "\U0001f511 Password:")
    return SignInState.PASSWORD


async def sign_in_password(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    password = update.message.text or ''
    await safe_delete(update.message)
    target = (update.effective_chat.id, context.bot)

    email = context.user_data.get('signin_email')
    try:
        user = get_storage(context).accounts.login(email, password)
    except UserNotFound:
        await safe_send_text(
            target,
            "\u26a0\ufe0f No account with that email. Send another email, or /cancel and sign up:",
        )
        return SignInState.EMAIL
    except WrongPassword:
        await safe_send_text(target, "\u26a0\ufe0f Incorrect password. Try again:")
        return SignInState.PASSWORD

    _clear_auth_data(context)
    remember_user(context, user)
    logging.info(f"Signed in user {user['id']}")

    text, markup = build_main_menu(context)
    await safe_send_text(target, text, reply_markup=markup)
    return ConversationHandler.END


# ── ConversationHandlers ──────────────────────────────────────

sign_up_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(sign_up_entry, pattern='^sign_up$')],
    per_message=False,
    states={
        SignUpState.EMAIL: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_up_email)],
        SignUpState.NAME: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_up_name)],
        SignUpState.PASSWORD: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_up_password)],
        SignUpState.CONFIRM_PASSWORD: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_up_confirm)],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)

sign_in_handler = ConversationHandler(
    entry_points=[CallbackQueryHandler(sign_in_entry, pattern='^sign_in$')],
    per_message=False,
    states={
        SignInState.EMAIL: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_in_email)],
        SignInState.PASSWORD: [MessageHandler(filters.TEXT & ~filters.COMMAND, sign_in_password)],
    },
    fallbacks=[CommandHandler('cancel', cancel), CommandHandler('start', force_start)],
)
