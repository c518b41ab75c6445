"""
Formatting helpers shared by actions and front-ends.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_HEX_QUANTITY = re.compile(r"^0x[0-9a-fA-F]+$")

MAX_DESCRIPTION_WORDS = 4


def format_private_key(key: Optional[str]) -> Optional[str]:
    """
    Normalize a private key read from the environment.

    Converts literal "\\n" sequences into newlines, strips one pair of
    wrapping double quotes and trims whitespace. Returns None for empty input.
    """
    if not key:
        return None
    key = key.replace("\\n", "\n")
    key = re.sub(r'^"(.*)"$', r"\1", key, flags=re.DOTALL)
    key = key.strip()
    return key or None


def truncate_words(text: str, max_words: int = MAX_DESCRIPTION_WORDS) -> str:
    """Keep the first `max_words` whitespace-separated words."""
    words = text.split()
    if len(words) > max_words:
        words = words[:max_words]
    return " ".join(words)


def hex_to_decimal(value: Any) -> Any:
    """
    Convert a hex quantity ("0x1bc16d674ec80000") to an int.

    Ints pass through; anything else that isn't a hex quantity is returned as-is.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, bytes):
        return int.from_bytes(value, "big") if value else 0
    if isinstance(value, str) and _HEX_QUANTITY.match(value):
        return int(value, 16)
    return value


def to_base_units(amount: str, decimals: int) -> int:
    """
    "1.5" with 6 decimals -> 1500000. Extra precision is truncated.

    Raises ValueError for anything that isn't a finite decimal number.
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return int(value.scaleb(decimals))


def from_base_units(raw: int, decimals: int) -> str:
    """1500000 with 6 decimals -> "1.5"."""
    value = Decimal(raw).scaleb(-decimals)
    text = format(value.normalize(), "f")
    return text


def split_message(text: str, max_length: int = 4096) -> list[str]:
    """Split a long message into chunks that fit Telegram's limit."""
    if len(text) <= max_length:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_length:
            chunks.append(text)
            break

        # Try to split at a newline
        split_pos = text.rfind("\n", 0, max_length)
        if split_pos == -1 or split_pos < max_length // 2:
            split_pos = text.rfind(" ", 0, max_length)
        if split_pos == -1 or split_pos < max_length // 2:
            split_pos = max_length

        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")

    return chunks
