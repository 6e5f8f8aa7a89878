import html
from typing import Any

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery, Message
from telegram.ext import ContextTypes

from handlers.start import ask_to_sign_in
from utils.constants import DEFAULT_ICON, MENU_BUTTON
from utils.progress import progress_bar
from utils.session import current_user, get_storage
from utils.telegram_helpers import safe_edit_text, safe_send_text

DECKS_PER_PAGE = 5

_EMPTY_TEXT = "\U0001f4da No decks yet\n\nCreate a deck and it will appear here."
_EMPTY_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton("\u2795 New Deck", callback_data='new_deck')],
    MENU_BUTTON,
])


async def my_decks_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Entry point from main menu: show first page of decks."""
    query = update.callback_query
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return

    await query.answer()
    decks = get_storage(context).decks.list_decks_for_user(user['id'])

    if not decks:
        await safe_edit_text(query, _EMPTY_TEXT, reply_markup=_EMPTY_MARKUP)
        return

    context.user_data['_decks_cache'] = [_summary(d) for d in decks]
    await _show_decks_page(query, context, page=0)


async def decks_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle page navigation."""
    query = update.callback_query
    await query.answer()

    page = int(query.data.split('_')[2])  # decks_page_N
    await _show_decks_page(query, context, page)


async def decks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/decks slash command: send a fresh My Decks list."""
    user = current_user(context)
    if not user:
        await ask_to_sign_in(update)
        return

    decks = get_storage(context).decks.list_decks_for_user(user['id'])
    if not decks:
        await safe_send_text(update.message, _EMPTY_TEXT, reply_markup=_EMPTY_MARKUP)
        return

    context.user_data['_decks_cache'] = [_summary(d) for d in decks]
    await _send_decks_page(update.message, context, page=0)


# ── private helpers ──────────────────────────────────────────

def _summary(deck: dict[str, Any]) -> dict[str, Any]:
    """Only what the list needs; user_data is pickled on every update."""
    return {
        'id': deck['id'],
        'title': deck['title'],
        'icon': deck['icon'],
        'subtitle': deck['subtitle'],
        'progress': deck['progress'],
    }


def icon_label(icon: str | None) -> str:
    # Photo icons are Telegram file ids; only short text icons fit on a button
    if not icon or icon == DEFAULT_ICON or len(icon) > 16:
        return '\U0001f4da'
    return icon


def _deck_lines(decks: list[dict[str, Any]]) -> str:
    lines = []
    for deck in decks:
        lines.append(
            f"{icon_label(deck['icon'])} <b>{html.escape(deck['title'])}</b>\n"
            f"    {progress_bar(deck['progress'])}  <i>{deck['subtitle']}</i>"
        )
    return '\n\n'.join(lines)


def _build_decks_markup(
    decks: list[dict[str, Any]],
    page: int,
    total_pages: int,
) -> tuple[str, InlineKeyboardMarkup]:
    start = page * DECKS_PER_PAGE
    page_decks = decks[start:start + DECKS_PER_PAGE]

    if total_pages > 1:
        header = f"\U0001f4da <b>My Decks</b> ({page + 1}/{total_pages})"
    else:
        header = "\U0001f4da <b>My Decks</b>"

    buttons: list[list[InlineKeyboardButton]] = [
        [InlineKeyboardButton(f"{icon_label(d['icon'])} {d['title']}", callback_data=f"deck_open_{d['id']}")]
        for d in page_decks
    ]

    if total_pages > 1:
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton("\u2190", callback_data=f'decks_page_{page - 1}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton("\u2192", callback_data=f'decks_page_{page + 1}'))
        buttons.append(nav)

    buttons.append([InlineKeyboardButton("\u2795 New Deck", callback_data='new_deck')])
    buttons.append(MENU_BUTTON)

    return f"{header}\n\n{_deck_lines(page_decks)}", InlineKeyboardMarkup(buttons)


def _total_pages(decks: list[dict[str, Any]]) -> int:
    return max(1, (len(decks) + DECKS_PER_PAGE - 1) // DECKS_PER_PAGE)


async def _show_decks_page(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, page: int) -> None:
    """Render a page of decks as clickable buttons (edit existing message)."""
    decks = context.user_data.get('_decks_cache', [])
    total_pages = _total_pages(decks)
    page = max(0, min(page, total_pages - 1))

    text, markup = _build_decks_markup(decks, page, total_pages)
    await safe_edit_text(query, text, reply_markup=markup)


async def _send_decks_page(message: Message, context: ContextTypes.DEFAULT_TYPE, page: int) -> None:
    """Render a page of decks as clickable buttons (send new message)."""
    decks = context.user_data.get('_decks_cache', [])
    total_pages = _total_pages(decks)
    page = max(0, min(page, total_pages - 1))

    text, markup = _build_decks_markup(decks, page, total_pages)
    await safe_send_text(message, text, reply_markup=markup)


async def show_decks(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Re-read decks and render page 0; used after a deck is deleted."""
    user = current_user(context)
    decks = get_storage(context).decks.list_decks_for_user(user['id'])
    if not decks:
        await safe_edit_text(query, _EMPTY_TEXT, reply_markup=_EMPTY_MARKUP)
        return

    context.user_data['_decks_cache'] = [_summary(d) for d in decks]
    await _show_decks_page(query, context, page=0)
