from enum import auto, IntEnum
from telegram import InlineKeyboardButton

DEFAULT_ICON = 'default_icon'

# Matches ids produced by utils.ids.new_id inside callback data
ID_PATTERN = r'[0-9a-f-]{36}'

DECK_TITLE_MAX = 50
CARD_SIDE_MAX = 1000
CARDS_PER_DAY_MAX = 500
PASSWORD_MIN = 6
NAME_MIN = 2


class SignUpState(IntEnum):
    EMAIL = auto()
    NAME = auto()
    PASSWORD = auto()
    CONFIRM_PASSWORD = auto()


class SignInState(IntEnum):
    EMAIL = auto()
    PASSWORD = auto()


class NewDeckState(IntEnum):
    TITLE = auto()
    CARDS_PER_DAY = auto()
    ICON = auto()


class AddCardState(IntEnum):
    AWAITING_CONTENT = auto()


class PracticeState(IntEnum):
    SHOWING_FRONT = auto()
    SHOWING_BACK = auto()


class LocationCardState(IntEnum):
    TITLE = auto()
    QUESTION = auto()
    ANSWER = auto()
    NOTES = auto()


class SettingsState(IntEnum):
    NEW_NAME = auto()
    NEW_EMAIL = auto()
    CURRENT_PASSWORD = auto()
    NEW_PASSWORD = auto()
    CONFIRM_DELETE = auto()


WELCOME_BUTTONS = [
    [
        InlineKeyboardButton("\U0001f4dd Sign up", callback_data='sign_up'),
        InlineKeyboardButton("\U0001f511 Sign in", callback_data='sign_in'),
    ],
]

MAIN_MENU_BUTTONS = [
    [
        InlineKeyboardButton("\U0001f4da My Decks", callback_data='my_decks'),
        InlineKeyboardButton("\u2795 New Deck", callback_data='new_deck'),
    ],
    [
        InlineKeyboardButton("\U0001f4cd Places", callback_data='places'),
        InlineKeyboardButton("\u2699\ufe0f Settings", callback_data='settings'),
    ],
    [InlineKeyboardButton("\u2753 How it works", callback_data='help')],
]

MENU_BUTTON = [InlineKeyboardButton("\U0001f3e0 Menu", callback_data='main_menu')]
