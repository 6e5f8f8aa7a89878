import logging
import os
from dotenv import load_dotenv

load_dotenv()

TG_BOT_TOKEN = os.getenv('TELEGRAM_BOT_TOKEN')
PROXY_URL = os.getenv('PROXY_URL')

_HERE = os.path.dirname(os.path.abspath(__file__))

DB_PATH = os.getenv('FLASHDECK_DB_PATH') or os.path.join(_HERE, 'flashdeck.db')
SESSION_PATH = os.getenv('FLASHDECK_SESSION_PATH') or os.path.join(_HERE, 'sessions.pickle')
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=LOG_LEVEL
)
