# structprob/cli_theme.py
"""Terminal theme for the STRUCTPROB CLI.

Coral & greige palette:
  - Branded banner and version line
  - Numbered section headers ("01 · SECTION NAME")
  - Rounded tables with warm greige borders
  - Status lines for success, warnings and errors
"""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

# ── Brand ─────────────────────────────────────────────────────────

BRAND = "S T R U C T P R O B"
TAGLINE = "Field-level confidence for structured model output"

# ── Palette ───────────────────────────────────────────────────────

CORAL = "#E87461"
GREIGE = "#B5A89A"
MUTED = "dim"


def print_banner(version: str, console: Console) -> None:
    """Print the STRUCTPROB banner."""
    console.print(f"\n  [bold {CORAL}]{BRAND}[/bold {CORAL}]\n")
    console.print(f"  [{GREIGE}]{TAGLINE}[/{GREIGE}]")
    console.print(f"  [{MUTED}]v{version}[/{MUTED}]")
    console.print()


def print_version(version: str, console: Console) -> None:
    """Print a compact branded version line."""
    t = Text()
    t.append(BRAND, style=f"bold {CORAL}")
    t.append(f"  v{version}", style=MUTED)
    console.print(t)


# ── Section headers ──────────────────────────────────────────────


def section(
    title: str,
    console: Console,
    number: str | None = None,
) -> None:
    """Print a numbered section header."""
    console.print()
    t = Text()
    if number:
        t.append(f"  {number}", style=f"bold {CORAL}")
        t.append(" · ", style=MUTED)
    else:
        t.append("  ")
    t.append(title.upper(), style="bold")
    console.print(t)
    console.print(f"  {'─' * len(TAGLINE)}", style=GREIGE)


# ── Tables ───────────────────────────────────────────────────────


def make_table(title: str | None = None, **kwargs: object) -> Table:
    """Create a table with rounded greige border."""
    return Table(
        title=title,
        box=box.ROUNDED,
        border_style=GREIGE,
        title_style=f"bold {CORAL}",
        header_style="bold",
        padding=(0, 1),
        **kwargs,
    )


def make_kv_table() -> Table:
    """Create a headerless two-column key–value table."""
    t = make_table(show_header=False)
    t.add_column("Key", style=f"bold {CORAL}", no_wrap=True)
    t.add_column("Value")
    return t


# ── Status lines ─────────────────────────────────────────────────


def info(msg: str) -> str:
    """Info-level status line (coral arrow, dim text)."""
    return f"  [{CORAL}]›[/{CORAL}] [{MUTED}]{msg}[/{MUTED}]"


def ok(msg: str) -> str:
    """Success status line (green check)."""
    return f"  [bold green]✓[/bold green] {msg}"


def warn(msg: str) -> str:
    """Warning status line (yellow bang)."""
    return f"  [bold yellow]![/bold yellow] [yellow]{msg}[/yellow]"
