from telegram import PhotoSize


def parse_photo(photo_obj: PhotoSize, caption: str | None = None) -> dict[str, str | None]:
    """
    The Telegram file_id becomes the front image; the caption, if any,
    is parsed like a text card.
    """
    parsed = parse_text(caption or '')
    parsed['front_image'] = photo_obj.file_id
    return parsed


def parse_text(content: str) -> dict[str, str]:
    """
    returns: {'front': str, 'back': str, 'notes': str}

    `front | back | notes` with pipes, or front on the first line and the
    back on the following lines.
    """
    text = content.strip()

    if '|' in text:
        parts = [p.strip() for p in text.split('|', 2)]
        parts += [''] * (3 - len(parts))
        return {'front': parts[0], 'back': parts[1], 'notes': parts[2]}

    if '\n' in text:
        lines = [l.strip() for l in text.split('\n') if l.strip()]
        if len(lines) >= 2:
            return {'front': lines[0], 'back': '\n'.join(lines[1:]), 'notes': ''}

    return {'front': text, 'back': '', 'notes': ''}


def parse_cards_per_day(text: str, maximum: int) -> int | None:
    text = (text or '').strip()
    if not text.isdigit():
        return None
    value = int(text)
    if value < 1 or value > maximum:
        return None
    return value


def truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len - 1] + '\u2026'
