import logging

from telegram import Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
    PersistenceInput,
    PicklePersistence,
)

from config import TG_BOT_TOKEN, PROXY_URL, DB_PATH, SESSION_PATH
from database.storage import Storage
import handlers.auth as hand_auth
import handlers.cards as hand_card
import handlers.decks as hand_deck
import handlers.decks_menu as hand_decks_menu
import handlers.help as hand_help
import handlers.manage as hand_manage
import handlers.places as hand_places
import handlers.practice as hand_practice
import handlers.settings as hand_settings
import handlers.start as hand_start
from utils.constants import ID_PATTERN
from utils.session import STORAGE_KEY


async def post_init(application: Application) -> None:
    logging.info("Opening storage...")
    application.bot_data[STORAGE_KEY] = Storage(DB_PATH).open()


async def post_shutdown(application: Application) -> None:
    storage = application.bot_data.pop(STORAGE_KEY, None)
    if storage is not None:
        storage.close()


def build_application() -> Application:
    # Only user_data (the signed-in snapshot) is written to disk
    persistence = PicklePersistence(
        filepath=SESSION_PATH,
        store_data=PersistenceInput(bot_data=False, chat_data=False, user_data=True, callback_data=False),
    )

    builder = (
        ApplicationBuilder()
        .token(TG_BOT_TOKEN)
        .persistence(persistence)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
    )
    if PROXY_URL:
        builder = builder.proxy(PROXY_URL).get_updates_proxy(PROXY_URL)
    application = builder.build()

    # Conversations
    application.add_handler(CommandHandler('start', hand_start.start))
    application.add_handler(hand_auth.sign_up_handler)
    application.add_handler(hand_auth.sign_in_handler)
    application.add_handler(hand_deck.new_deck_handler)
    application.add_handler(hand_card.add_card_handler)
    application.add_handler(hand_practice.practice_handler)
    application.add_handler(hand_places.new_place_handler)
    application.add_handler(hand_settings.settings_handler)

    # Slash commands
    application.add_handler(CommandHandler('decks', hand_decks_menu.decks_command))
    application.add_handler(CommandHandler('help', hand_help.help_command))
    application.add_handler(CommandHandler('clear', hand_start.clear_command))
    application.add_handler(CommandHandler('logout', hand_start.logout))

    # Standalone callback handlers
    application.add_handler(CallbackQueryHandler(hand_start.main_menu, pattern='^main_menu$'))
    application.add_handler(CallbackQueryHandler(hand_start.logout, pattern='^logout$'))
    application.add_handler(CallbackQueryHandler(hand_help.help_entry, pattern='^help$'))
    application.add_handler(CallbackQueryHandler(hand_settings.settings_entry, pattern='^settings$'))

    # My Decks
    application.add_handler(CallbackQueryHandler(hand_decks_menu.my_decks_entry, pattern='^my_decks$'))
    application.add_handler(CallbackQueryHandler(hand_decks_menu.decks_page, pattern=r'^decks_page_\d+$'))

    # Manage: deck detail & card actions
    application.add_handler(CallbackQueryHandler(hand_manage.deck_open, pattern=rf'^deck_open_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_cards_page, pattern=r'^deck_page_\d+$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_info, pattern=rf'^card_info_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_delete_confirm, pattern=rf'^card_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_manage.card_delete_yes, pattern=rf'^card_delete_yes_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_delete_confirm, pattern=rf'^deck_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_manage.deck_delete_yes, pattern=rf'^deck_delete_yes_{ID_PATTERN}$'))

    # Places
    application.add_handler(CallbackQueryHandler(hand_places.places_entry, pattern='^places$'))
    application.add_handler(CallbackQueryHandler(hand_places.place_open, pattern=rf'^place_open_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_places.place_reveal, pattern=rf'^place_reveal_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_places.place_map, pattern=rf'^place_map_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_places.place_delete_confirm, pattern=rf'^place_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_places.place_delete_yes, pattern=rf'^place_delete_yes_{ID_PATTERN}$'))

    application.add_error_handler(error_handler)
    return application


def main() -> None:
    logging.info("Running main")
    application = build_application()
    application.run_polling()


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Global error handler: logs the error and tries to notify the user."""
    error = context.error
    logging.error(f"Update {update} caused error: {error}", exc_info=error)

    if isinstance(error, Forbidden):
        # User blocked the bot, nothing we can do
        logging.warning(f"Bot was blocked by user: {error}")
        return

    if isinstance(error, (TimedOut, NetworkError)):
        logging.warning(f"Network issue: {error}")
        return

    if isinstance(error, BadRequest):
        msg = str(error).lower()
        if "message is not modified" in msg:
            # User tapped the same button twice, ignore
            return
        if "message to edit not found" in msg or "message to delete not found" in msg:
            return
        logging.warning(f"Bad request: {error}")

    # Try to notify the user something went wrong
    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="\u26a0\ufe0f Something went wrong. Try /start to reset."
            )
        except Exception as e:
            logging.warning(f"Could not notify chat about the error: {e}")


if __name__ == '__main__':
    logging.info("Starting app")
    main()
