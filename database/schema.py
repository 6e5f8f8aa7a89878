# ======================= USERS ==========================

user_schema = '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE NOT NULL,
        name TEXT,
        password_hash TEXT NOT NULL,
        created_at TEXT
    )
'''

# ======================= DECKS ==========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS decks (
        id TEXT PRIMARY KEY,
        title TEXT,

        -- Cached display values, recomputed on every read
        subtitle TEXT,
        progress REAL,

        icon TEXT,
        cards_per_day INTEGER,
        user_id TEXT,

        -- Daily practice counter
        card_count_today INTEGER DEFAULT 0,
        last_updated TEXT,

        FOREIGN KEY (user_id) REFERENCES users(id)
    )
'''

# ======================= CARDS ==========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS cards (
        id TEXT PRIMARY KEY,
        front TEXT,
        back TEXT,
        notes TEXT,
        front_image TEXT,
        back_image TEXT,
        deck_id TEXT,

        FOREIGN KEY (deck_id) REFERENCES decks(id)
    )
'''

# =================== LOCATION CARDS =====================

location_card_schema = '''
    CREATE TABLE IF NOT EXISTS location_cards (
        id TEXT PRIMARY KEY,
        title TEXT,
        question TEXT,
        answer TEXT,
        notes TEXT,
        latitude REAL NOT NULL,
        longitude REAL NOT NULL,
        user_id TEXT,
        created_at TEXT,

        FOREIGN KEY (user_id) REFERENCES users(id)
    )
'''

# ======================= INDEXES ========================

index_schema = (
    'CREATE INDEX IF NOT EXISTS idx_decks_user ON decks(user_id)',
    'CREATE INDEX IF NOT EXISTS idx_cards_deck ON cards(deck_id)',
    'CREATE INDEX IF NOT EXISTS idx_location_cards_user ON location_cards(user_id, created_at)',
)

ALL_TABLES = (user_schema, deck_schema, card_schema, location_card_schema)
