"""
Daily counter rollover and the display values derived from it.

All functions are pure: callers pass `now` so the clock stays at the edges.
"""

from datetime import datetime, timezone


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def to_utc_iso(value: str | datetime) -> str:
    """
    Normalise a timestamp to UTC ISO-8601 so stored values sort as text.
    Naive values are taken as local time. Raises ValueError on garbage.
    """
    stamp = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    return stamp.astimezone(timezone.utc).isoformat(timespec='microseconds')


def needs_reset(last_updated: str | None, now: datetime) -> bool:
    """True when the stored calendar day differs from today's (local time)."""
    last = parse_timestamp(last_updated)
    if last is None:
        return True
    if last.tzinfo is not None:
        last = last.astimezone().replace(tzinfo=None)
    return last.date() != now.date()


def compute_progress(count_today: int, total_cards: int) -> float:
    if total_cards <= 0:
        return 0.0
    return count_today / total_cards


def format_subtitle(count_today: int, total_cards: int) -> str:
    return f"today: {count_today}/{total_cards} cards"


def progress_bar(progress: float, width: int = 10) -> str:
    filled = max(0, min(width, round(progress * width)))
    return '\u25a0' * filled + '\u25a1' * (width - filled)
