"""
Telegram send/edit wrappers.

Every outgoing message goes through here. A failed call is logged and comes
back as False, so one blocked chat or stale button never aborts an update.

Messages are sent as HTML: values read from storage (deck titles, card sides,
names, emails, place fields) must go through html.escape() before they are
formatted into the text.

A target is either the Message being answered or a (chat_id, bot) pair. Use
the pair when the triggering message was already deleted, e.g. a password.
"""

import logging
from typing import Any, Awaitable

from telegram import CallbackQuery, InlineKeyboardMarkup, Message
from telegram.error import BadRequest, Forbidden, NetworkError

logger = logging.getLogger(__name__)

Target = Message | tuple[int, Any]
Markup = InlineKeyboardMarkup | None

HTML = 'HTML'


async def _attempt(action: str, call: Awaitable[Any]) -> bool:
    # BadRequest and TimedOut both subclass NetworkError
    try:
        await call
    except Forbidden:
        logger.warning(f"{action}: bot is blocked in this chat")
        return False
    except BadRequest as e:
        logger.warning(f"{action} rejected: {e}")
        return False
    except NetworkError as e:
        logger.warning(f"{action} failed: {e}")
        return False
    return True


# ── Sending ───────────────────────────────────────────────────

async def safe_send_text(target: Target, text: str, reply_markup: Markup = None) -> bool:
    if isinstance(target, tuple):
        chat_id, bot = target
        call = bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup, parse_mode=HTML)
    else:
        call = target.reply_text(text, reply_markup=reply_markup, parse_mode=HTML)
    return await _attempt('send_message', call)


async def safe_send_photo(
    target: Target,
    photo: str,
    caption: str | None = None,
    reply_markup: Markup = None,
) -> bool:
    if isinstance(target, tuple):
        chat_id, bot = target
        call = bot.send_photo(chat_id=chat_id, photo=photo, caption=caption,
                              reply_markup=reply_markup, parse_mode=HTML)
    else:
        call = target.reply_photo(photo=photo, caption=caption, reply_markup=reply_markup, parse_mode=HTML)
    return await _attempt('send_photo', call)


async def safe_delete(message: Message) -> bool:
    """False when the message is already gone or too old to delete."""
    return await _attempt('delete_message', message.delete())


# ── Editing in place ──────────────────────────────────────────

async def safe_edit_text(query: CallbackQuery, text: str, reply_markup: Markup = None) -> bool:
    """
    Rewrite the message behind a button press. When Telegram refuses the
    edit (message too old, deleted, or not a text message) the same content is
    posted as a new message instead.
    """
    try:
        await query.edit_message_text(text, reply_markup=reply_markup, parse_mode=HTML)
        return True
    except BadRequest as e:
        if 'not modified' in str(e).lower():
            return True
        logger.info(f"Edit refused ({e}), posting a new message")
    except NetworkError as e:
        logger.warning(f"edit_message_text failed: {e}")
        return False

    return await safe_send_text(query.message, text, reply_markup)


def _chat_of(query: CallbackQuery) -> tuple[int, Any]:
    return query.message.chat_id, query.get_bot()


async def safe_replace(query: CallbackQuery, text: str, reply_markup: Markup = None) -> bool:
    """
    Show text in place of the pressed message. Photo messages cannot be edited
    into text, so those are deleted and the text is sent fresh.
    """
    if query.message is None or not query.message.photo:
        return await safe_edit_text(query, text, reply_markup)

    chat = _chat_of(query)
    await safe_delete(query.message)
    return await safe_send_text(chat, text, reply_markup)


async def safe_replace_with_photo(
    query: CallbackQuery,
    photo: str,
    caption: str,
    reply_markup: Markup = None,
) -> bool:
    """Swap the pressed message for a photo. Media can't be edited into text messages either way."""
    chat = _chat_of(query)
    await safe_delete(query.message)
    return await safe_send_photo(chat, photo, caption=caption, reply_markup=reply_markup)
