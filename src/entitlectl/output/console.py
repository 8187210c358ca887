"""Rich Console factory and theme for entitlectl output.

Consoles render into a StringIO buffer so renderers return plain strings.
In non-TTY environments (tests, pipes) Rich disables color codes.
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

ENTITLECTL_THEME = Theme(
    {
        "ent.ok": "bold green",
        "ent.error": "bold red",
        "ent.warning": "bold yellow",
        "ent.op": "bold cyan",
        "ent.key": "dim",
        "ent.id": "bold blue",
        "ent.entitled": "green",
        "ent.pending": "yellow",
        "ent.unused": "dim",
        "ent.dead": "bold red",
    }
)

_STATUS_STYLES: dict[str, str] = {
    "BANK_PAID": "ent.entitled",
    "CARD_PAID": "ent.entitled",
    "WIRE_PAID": "ent.entitled",
    "BANK_PENDING": "ent.pending",
    "UNUSED": "ent.unused",
    "completed": "ent.entitled",
    "pending": "ent.pending",
    "failed": "ent.warning",
    "processing": "ent.pending",
    "dead_letter": "ent.dead",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Create a Console that renders to a StringIO buffer."""
    return Console(
        file=StringIO(),
        theme=ENTITLECTL_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    """Extract rendered text from a StringIO-backed Console."""
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str) -> str:
    """Rich style for a payment or outbox status ('' if unstyled)."""
    return _STATUS_STYLES.get(status, "")
