from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class PhoneIdentity:
    """Digit-only form of a phone number."""

    digits: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.digits

    def variants(self) -> frozenset[str]:
        return variants(self)

    def e164(self) -> str:
        """Country-code prefixed form the carrier expects."""
        return f"+{self.digits}"

    def __str__(self) -> str:
        return self.digits


def normalize(raw: Any) -> PhoneIdentity:
    """
    Strip every non-digit character.

    None and empty values give an empty identity, which never matches anything.
    """
    if raw is None:
        return PhoneIdentity()
    return PhoneIdentity(_NON_DIGITS.sub("", str(raw)))


def variants(identity: PhoneIdentity) -> frozenset[str]:
    """
    Equivalent representations of a North American number:

      "15551234567" -> {"15551234567", "5551234567"}
      "5551234567"  -> {"5551234567", "15551234567"}

    Any other length is only equivalent to itself. The empty identity has no variants.
    """
    digits = identity.digits
    if not digits:
        return frozenset()
    if len(digits) == 11 and digits.startswith("1"):
        return frozenset({digits, digits[1:]})
    if len(digits) == 10:
        return frozenset({digits, "1" + digits})
    return frozenset({digits})


def mask(raw: Any) -> str:
    """Last four digits only, for log lines."""
    digits = normalize(raw).digits
    if len(digits) <= 4:
        return "***"
    return "***" + digits[-4:]
