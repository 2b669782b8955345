"""Pickup-code convention used by the front end.

A pickup code is exactly four digits, sent to the server as a single line
``PICKUP:<code>``. The connection core never looks inside messages; this
module only helps the UI compose and recognise them.
"""

from typing import Optional

PICKUP_PREFIX = "PICKUP:"
PICKUP_CODE_LENGTH = 4


def is_valid_code(code: str) -> bool:
    return len(code) == PICKUP_CODE_LENGTH and code.isdigit() and code.isascii()


def format_pickup_message(code: str) -> str:
    """Return the wire message for *code*.

    Raises ValueError if *code* is not exactly four ASCII digits.
    """
    if not is_valid_code(code):
        raise ValueError(f"pickup code must be {PICKUP_CODE_LENGTH} digits, got {code!r}")
    return f"{PICKUP_PREFIX}{code}"


def parse_pickup_message(text: str) -> Optional[str]:
    """Extract the code from a ``PICKUP:<code>`` line, or None."""
    text = text.strip()
    if not text.startswith(PICKUP_PREFIX):
        return None
    code = text[len(PICKUP_PREFIX):]
    return code if is_valid_code(code) else None


class PickupCodeEntry:
    """Keypad-style composition of a pickup code."""

    def __init__(self) -> None:
        self._digits = ""

    @property
    def digits(self) -> str:
        return self._digits

    @property
    def is_complete(self) -> bool:
        return len(self._digits) == PICKUP_CODE_LENGTH

    def press(self, key: str) -> bool:
        """Append one digit. Returns False if ignored (not a digit, or full)."""
        if len(key) != 1 or not is_valid_code(key * PICKUP_CODE_LENGTH):
            return False
        if self.is_complete:
            return False
        self._digits += key
        return True

    def backspace(self) -> None:
        self._digits = self._digits[:-1]

    def clear(self) -> None:
        self._digits = ""

    def message(self) -> Optional[str]:
        """The wire message once four digits are entered, else None."""
        if not self.is_complete:
            return None
        return format_pickup_message(self._digits)

    def masked(self, placeholder: str = "_") -> str:
        """Digits padded to full length, e.g. ``"12__"``."""
        return self._digits.ljust(PICKUP_CODE_LENGTH, placeholder)
