"""Inline cheer detection.

A cheer is a whitespace-delimited token made of a known cheer emote name
followed by an amount, e.g. ``Kappa100`` or ``Cheer50``. Emote names are
matched case-sensitively.
"""

from __future__ import annotations

import logging

from .utils import parse_int

logger = logging.getLogger("loyalty.cheers")

CHEER_PREFIXES: tuple[str, ...] = (
    "BleedPurple", "Cheer", "PogChamp", "ShowLove", "Pride", "HeyGuys", "FrankerZ",
    "SeemsGood", "Party", "Kappa", "DansGame", "EleGiggle", "TriHard", "Kreygasm", "4Head",
    "SwiftRage", "NotLikeThis", "FailFish", "VoHiYo", "PJSalt", "MrDestructoid", "bday",
    "RIPCheer", "Shamrock",
)


def scan_cheers(text: str, prefixes: tuple[str, ...] = CHEER_PREFIXES) -> int:
    """Sum the amounts of all cheer tokens in ``text``.

    Tokens with a known prefix but a malformed amount (``Kappa``, ``Cheer1x``)
    are skipped. Returns 0 when nothing was found.
    """
    total = 0
    for token in text.split(" "):
        for prefix in prefixes:
            if not token.startswith(prefix):
                continue
            amount = parse_int(token[len(prefix):])
            if amount is None:
                logger.debug("Ignoring malformed cheer token %r", token)
                continue
            logger.debug("Found cheer %s", token)
            total += amount
    return total
