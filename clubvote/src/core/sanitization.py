import re

from config import settings

CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# Delimiters that have no business in a person's name
NAME_DELIMITERS_PATTERN = re.compile(r'[\[\]<>{}\n\r\t]')

WHITESPACE_RUN = re.compile(r'\s+')

MAX_TITLE_LENGTH = 200


def sanitize_guest_name(name: str | None, max_length: int | None = None) -> str:
    """Normalize a free-text guest nominee name.

    Returns an empty string when nothing usable is left; callers treat that
    as a missing name. Case is preserved, duplicate checks are exact.
    """
    if not name:
        return ""
    if max_length is None:
        max_length = settings.GUEST_NAME_MAX_LENGTH

    name = CONTROL_CHARS_PATTERN.sub('', name)
    name = NAME_DELIMITERS_PATTERN.sub(' ', name)
    name = WHITESPACE_RUN.sub(' ', name).strip()

    if len(name) > max_length:
        name = name[:max_length].rstrip()
    return name


def sanitize_title(text: str | None) -> str:
    if not text:
        return ""
    text = CONTROL_CHARS_PATTERN.sub('', text)
    text = WHITESPACE_RUN.sub(' ', text).strip()
    if len(text) > MAX_TITLE_LENGTH:
        text = text[:MAX_TITLE_LENGTH].rstrip()
    return text
