"""Chat command parsing.

Commands are single keywords with positional arguments, separated by single
spaces: ``!giftsub @Alice``. Parsing never raises; a missing argument comes
back as ``None`` and each handler decides how to answer it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

COMMAND_MARKER = "!"
MENTION_MARKER = "@"


@dataclass(frozen=True)
class ParsedCommand:
    """Keyword plus normalized positional arguments."""

    keyword: str
    arguments: tuple[str, ...] = field(default_factory=tuple)

    def argument(self, n: int) -> str | None:
        if n < len(self.arguments):
            return self.arguments[n]
        return None


def _strip_marker(token: str, marker: str) -> str:
    return token[len(marker):] if token.startswith(marker) else token


def get_command(text: str) -> str:
    """Return the lowercased first token with the command marker stripped."""
    first = text.split(" ")[0]
    return _strip_marker(first.lower(), COMMAND_MARKER)


def get_argument(n: int, text: str) -> str | None:
    """Return the n-th argument after the keyword, or None if absent."""
    return parse_command(text).argument(n)


def parse_command(text: str) -> ParsedCommand:
    parts = text.split(" ")
    arguments = tuple(_strip_marker(p.lower(), MENTION_MARKER) for p in parts[1:])
    return ParsedCommand(keyword=get_command(text), arguments=arguments)
