"""Input constraints for account fields."""

import re
import unicodedata
from typing import Optional

USERNAME_MIN_LENGTH = 5
USERNAME_MAX_LENGTH = 32
PASS_HASH_MIN_LENGTH = 40
EMAIL_MIN_LENGTH = 3
EMAIL_MAX_LENGTH = 255
DISPLAY_NAME_MIN_LENGTH = 5
DISPLAY_NAME_MAX_LENGTH = 48

USERNAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')
BASE64_PATTERN = re.compile(
    r'^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$'
)


def _blank(value: Optional[str]) -> bool:
    return not isinstance(value, str) or not value.strip()


def username_length_ok(username: Optional[str]) -> bool:
    """Check only the length bounds of a username."""
    return not _blank(username) \
        and USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH


def is_valid_username(username: Optional[str]) -> bool:
    """Usernames are alphanumeric, plus ``_`` and ``-``."""
    return username_length_ok(username) \
        and USERNAME_PATTERN.match(username) is not None


def is_valid_pass_hash(pass_hash: Optional[str]) -> bool:
    """The client sends a pre-hashed password as padded base64."""
    return not _blank(pass_hash) \
        and len(pass_hash) >= PASS_HASH_MIN_LENGTH \
        and BASE64_PATTERN.match(pass_hash) is not None


def is_valid_display_name(display_name: Optional[str]) -> bool:
    """Allow printable names without surrounding whitespace."""
    if _blank(display_name):
        return False
    if not DISPLAY_NAME_MIN_LENGTH <= len(display_name) \
            <= DISPLAY_NAME_MAX_LENGTH:
        return False
    if display_name != display_name.strip():
        return False
    # Control, format, surrogate, private-use and unassigned code points.
    return not any(unicodedata.category(char).startswith('C')
                   for char in display_name)


def is_valid_email(email: Optional[str]) -> bool:
    return not _blank(email) \
        and EMAIL_MIN_LENGTH <= len(email) <= EMAIL_MAX_LENGTH \
        and '@' in email
