import sys
from typing import Any

from rich.console import Console

NAME_WIDTH = 32
RKEY_WIDTH = 13
SIZE_WIDTH = 10


def get_rich_console() -> Console: return Console(stderr=True, highlight=False)


def get_output_console() -> Console: return Console(highlight=False, soft_wrap=True)


def stdout_is_terminal() -> bool:
    return sys.stdout.isatty()


def stdin_is_terminal() -> bool:
    return sys.stdin.isatty()


def format_size(size: Any) -> str:
    """Human-readable byte count: ``1536`` -> ``1.5 KB``."""
    if not isinstance(size, int) or isinstance(size, bool):
        return "?"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{size} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _fit(text: str, width: int) -> str:
    if len(text) > width:
        return text[: width - 1] + "…"
    return text.ljust(width)


def format_table_row(rkey: str, name: str, size: str, created: str) -> str:
    """Fixed-width row for ``aqfile list``."""
    return f"{rkey.ljust(RKEY_WIDTH)}  {_fit(name, NAME_WIDTH)}  {size.rjust(SIZE_WIDTH)}  {created}"


def format_table_header() -> str:
    header = format_table_row("RKEY", "NAME", "SIZE", "CREATED")
    return f"{header}\n{'-' * len(header.rstrip())}"
