"""Item name normalization for matching external records to the catalog."""

import re

_PARENTHETICAL = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")


def normalize_item_name(name: str) -> str:
    """
    Matching key for an item name.

    Case-insensitive, parenthesized qualifiers dropped, whitespace collapsed:
    "Water Bottles (24 pk)" and "water  bottles" share a key.
    """
    stripped = _PARENTHETICAL.sub(" ", name)
    return _WHITESPACE.sub(" ", stripped).strip().lower()
