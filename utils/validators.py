"""
Input checks for the sign-up / settings flows.

Each returns an error string for the user, or None when the value is fine.
"""

import re

from utils.constants import NAME_MIN, PASSWORD_MIN

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_email(text: str) -> str | None:
    if not text:
        return 'Email is required'
    if not EMAIL_RE.match(text):
        return 'Please enter a valid email'
    return None


def validate_name(text: str) -> str | None:
    if not text:
        return 'Name is required'
    if len(text) < NAME_MIN:
        return 'Name is too short'
    return None


def validate_password(text: str) -> str | None:
    if not text:
        return 'Password is required'
    if len(text) < PASSWORD_MIN:
        return f'Password must be at least {PASSWORD_MIN} characters'
    return None


def validate_confirm_password(password: str, confirm: str) -> str | None:
    if not confirm:
        return 'Please confirm your password'
    if password != confirm:
        return 'Passwords do not match'
    return None
