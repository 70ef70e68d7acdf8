"""
Opaque continuation tokens for store queries.

Tokens are url-safe base64 of the next offset; callers must treat them as
opaque strings.
"""

import base64
import binascii
from typing import Optional

from ..domain.exceptions import ValidationException

_PREFIX = "offset:"


def encode_page_token(offset: int) -> str:
    raw = f"{_PREFIX}{offset}".encode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_page_token(token: Optional[str]) -> int:
    """
    Decode a continuation token into an offset.

    Args:
        token: Token from a previous page, or None for the first page

    Returns:
        Row offset to continue from

    Raises:
        ValidationException: If the token was not produced by encode_page_token
    """
    if not token:
        return 0
    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("ascii")
    except (binascii.Error, UnicodeError, ValueError):
        raise ValidationException("page_token", token, "Not a valid page token")

    if not raw.startswith(_PREFIX) or not raw[len(_PREFIX):].isdigit():
        raise ValidationException("page_token", token, "Not a valid page token")
    return int(raw[len(_PREFIX):])


def offset_for_page(page: int, page_size: int) -> int:
    """Offset of a 1-based page number."""
    if page < 1:
        raise ValidationException("page", page, "Page numbers start at 1")
    return (page - 1) * page_size


def token_for_page(page: int, page_size: int) -> Optional[str]:
    offset = offset_for_page(page, page_size)
    return encode_page_token(offset) if offset else None
