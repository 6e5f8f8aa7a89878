from telegram import Update, InlineKeyboardMarkup
from telegram.ext import ContextTypes

from utils.constants import MENU_BUTTON
from utils.telegram_helpers import safe_edit_text, safe_send_text


HELP_TEXT = (
    "<b>\u2753 How it works</b>\n\n"
    "1. Create a deck and add cards \u2014 <code>front | back</code>, or a photo\n"
    "2. Tap Practice and flip through the deck\n"
    "3. Every card you flip counts toward today's progress\n"
    "4. Share a location to pin a question to a place\n\n"
    "The daily counter starts from zero every morning \U0001f305"
)

_MARKUP = InlineKeyboardMarkup([MENU_BUTTON])


async def help_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    await safe_edit_text(query, HELP_TEXT, reply_markup=_MARKUP)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await safe_send_text(update.message, HELP_TEXT, reply_markup=_MARKUP)
