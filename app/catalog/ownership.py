"""
Tagged ownership variants for settlement routing.

The settlement coordinator matches on these exhaustively instead of
comparing provider_type strings.

Usage:
    match snapshot.ownership:
        case PlatformOwned():
            ...
        case ThirdPartyOwned(payee_id=payee_id, default_rate=rate):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PlatformOwned:
    """Sale proceeds belong entirely to the platform."""


@dataclass(frozen=True)
class ThirdPartyOwned:
    """Sale proceeds go to a payee, minus platform commission."""

    payee_id: int
    default_rate: Decimal | None = None


Ownership = PlatformOwned | ThirdPartyOwned
