import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import ContextTypes

from handlers.decks_menu import icon_label, show_decks
from handlers.start import ask_to_sign_in
from utils.progress import progress_bar
from utils.session import current_user, get_storage, owned_card, owned_deck
from utils.telegram_helpers import safe_edit_text, safe_replace, safe_send_photo
from utils.utils import truncate

CARDS_PER_PAGE = 5
FRONT_MAX = 30

_MY_DECKS_MARKUP = InlineKeyboardMarkup([[InlineKeyboardButton('My Decks', callback_data='my_decks')]])


def _card_label(card: dict) -> str:
    if card.get('front_image') and not card['front']:
        return '\U0001f4f7 Photo card'
    label = truncate(card['front'], FRONT_MAX)
    return f"\U0001f4f7 {label}" if card.get('front_image') else label


async def _show_deck_detail(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    deck_id: str,
    page: int = 0,
) -> None:
    deck = owned_deck(context, deck_id)
    if deck is None:
        await safe_replace(query, "Deck not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    cards = deck['cards']
    total = len(cards)
    total_pages = max(1, (total + CARDS_PER_PAGE - 1) // CARDS_PER_PAGE)
    page = max(0, min(page, total_pages - 1))

    context.user_data['cur_deck_id'] = deck_id
    context.user_data['manage_deck_page'] = page

    start = page * CARDS_PER_PAGE
    page_cards = cards[start:start + CARDS_PER_PAGE]

    title = f"{icon_label(deck['icon'])} <b>{html.escape(deck['title'])}</b> \u00b7 {total} cards"
    if total_pages > 1:
        title += f"  ({page + 1}/{total_pages})"

    text = (
        f"{title}\n"
        f"{progress_bar(deck['progress'])}  <i>{deck['subtitle']}</i>"
    )
    if not cards:
        text += "\n\n<i>No cards yet</i>"

    buttons: list[list[InlineKeyboardButton]] = [
        [InlineKeyboardButton(_card_label(c), callback_data=f"card_info_{c['id']}")]
        for c in page_cards
    ]

    if total_pages > 1:
        nav: list[InlineKeyboardButton] = []
        if page > 0:
            nav.append(InlineKeyboardButton('\u2190', callback_data=f'deck_page_{page - 1}'))
        if page < total_pages - 1:
            nav.append(InlineKeyboardButton('\u2192', callback_data=f'deck_page_{page + 1}'))
        buttons.append(nav)

    actions = [InlineKeyboardButton('\U0001f4dd Add card', callback_data=f'add_card_{deck_id}')]
    if total > 0:
        actions.append(InlineKeyboardButton('\U0001f9e0 Practice', callback_data=f'practice_{deck_id}'))
    buttons.append(actions)
    buttons.append([InlineKeyboardButton('\U0001f5d1\ufe0f Delete deck', callback_data=f'deck_delete_{deck_id}')])
    buttons.append([InlineKeyboardButton('My Decks', callback_data='my_decks')])

    await safe_replace(query, text, reply_markup=InlineKeyboardMarkup(buttons))


# ── Standalone callbacks ──────────────────────────────────────

async def deck_open(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    deck_id = query.data.rsplit('_', 1)[1]
    await _show_deck_detail(query, context, deck_id)


async def deck_cards_page(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    page = int(query.data.rsplit('_', 1)[1])
    deck_id = context.user_data.get('cur_deck_id')
    await _show_deck_detail(query, context, deck_id, page)


async def card_info(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    card = owned_card(context, query.data.rsplit('_', 1)[1])
    if card is None:
        await safe_replace(query, "Card not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    notes = f"\n\n\U0001f5d2 <i>{html.escape(card['notes'])}</i>" if card['notes'] else ''
    text = (
        f"<b>Front:</b> {html.escape(card['front'] or '')}\n"
        f"<b>Back:</b> {html.escape(card['back'] or '')}"
        f"{notes}"
    )
    markup = InlineKeyboardMarkup([
        [
            InlineKeyboardButton('\U0001f5d1\ufe0f Delete', callback_data=f"card_delete_{card['id']}"),
            InlineKeyboardButton('Back', callback_data=f"deck_open_{card['deck_id']}"),
        ]
    ])

    if card.get('front_image'):
        await safe_send_photo(query.message, card['front_image'], caption=text, reply_markup=markup)
    else:
        await safe_edit_text(query, text, reply_markup=markup)


async def card_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    card = owned_card(context, query.data.rsplit('_', 1)[1])
    if card is None:
        await safe_replace(query, "Card not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    await safe_replace(
        query,
        "\U0001f5d1\ufe0f Delete this card? This cannot be undone.",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f"card_delete_yes_{card['id']}"),
                InlineKeyboardButton('Cancel', callback_data=f"deck_open_{card['deck_id']}"),
            ]
        ]),
    )


async def card_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    card = owned_card(context, query.data.rsplit('_', 1)[1])
    if card is None:
        await safe_replace(query, "Card not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    get_storage(context).cards.delete_card(card['id'])

    page = context.user_data.get('manage_deck_page', 0)
    await _show_deck_detail(query, context, card['deck_id'], page)


async def deck_delete_confirm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    deck = owned_deck(context, query.data.rsplit('_', 1)[1])
    if deck is None:
        await safe_replace(query, "Deck not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    await safe_edit_text(
        query,
        f"\U0001f5d1\ufe0f Delete deck <b>{html.escape(deck['title'])}</b> and all its cards?\n<i>This cannot be undone.</i>",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('Yes, delete', callback_data=f"deck_delete_yes_{deck['id']}"),
                InlineKeyboardButton('Cancel', callback_data=f"deck_open_{deck['id']}"),
            ]
        ]),
    )


async def deck_delete_yes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not current_user(context):
        await ask_to_sign_in(update)
        return

    await query.answer()
    deck = owned_deck(context, query.data.rsplit('_', 1)[1])
    if deck is None:
        await safe_replace(query, "Deck not found.", reply_markup=_MY_DECKS_MARKUP)
        return

    result = get_storage(context).decks.delete_deck(deck['id'])
    logging.info(f"Deck {deck['id']} deleted from chat, {result['deleted_card_count']} cards")
    context.user_data.pop('cur_deck_id', None)
    context.user_data.pop('manage_deck_page', None)

    # Go directly to My Decks, no intermediate "Deck deleted" message
    await show_decks(query, context)
