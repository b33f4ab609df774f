# structprob/cli.py
"""
STRUCTPROB CLI -- Click commands with a rich terminal UI.

Provides the ``structprob`` console entry-point declared in pyproject.toml
as ``structprob.cli:cli``:

- score:        per-field joint/average probability of a response file
- reconstruct:  rebuild the generated text from the trace and compare it
- config show:  display the active StructprobConfig
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape as _esc

from . import __version__
from . import cli_theme as theme
from .config import get_config
from .decoding import load_response, reconstruct_bytes, reconstruct_text
from .errors import StructprobError
from .scoring import FieldProbability, get_field_probabilities
from .utils.logging import (
    get_current_log_file,
    get_logger,
    log_text_content,
    setup_logging,
)

console = Console()


def _print_version(
    ctx: click.Context,
    _param: click.Parameter,
    value: bool,
) -> None:
    if not value or ctx.resilient_parsing:
        return
    theme.print_version(__version__, console)
    ctx.exit()


def _start_session(verbose: bool) -> None:
    setup_logging(level="DEBUG" if verbose else None, console_output=verbose)


def _response_path(response_file: Optional[Path]) -> Path:
    return response_file if response_file is not None else get_config().response_file


class StructprobGroup(click.Group):
    """Click group that shows the banner above root-level help."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            theme.print_banner(__version__, console)
        super().format_help(ctx, formatter)


# ---------------------------------------------------------------------------
# Main CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True, cls=StructprobGroup)
@click.option(
    "--version",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """STRUCTPROB -- field-level confidence for structured model output."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# score
# ---------------------------------------------------------------------------


def _render_scores(fields: dict[str, FieldProbability], precision: int) -> None:
    t = theme.make_table()
    t.add_column("Field", style=f"bold {theme.CORAL}")
    t.add_column("Joint Probability", justify="right")
    t.add_column("Average Probability", justify="right")
    for name, probability in fields.items():
        t.add_row(
            _esc(name),
            f"{probability.joint_probability:.{precision}f}",
            f"{probability.average_probability:.{precision}f}",
        )
    console.print(t)


@cli.command()
@click.argument(
    "response_file",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    show_default=True,
    help="Output format.",
)
@click.option("--precision", type=click.IntRange(0, 17), default=None, help="Decimal places shown in table output.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log alignment details to stderr.")
def score(
    response_file: Optional[Path],
    output_format: str,
    precision: Optional[int],
    verbose: bool,
) -> None:
    """Score every JSON field of a response file.

    \b
    RESPONSE_FILE defaults to the configured response_file (llmresponse.json).

    \b
    Examples:
      structprob score llmresponse.json
      structprob score out.json --format json
    """
    _start_session(verbose)
    logger = get_logger(__name__)
    cfg = get_config()
    path = _response_path(response_file)

    try:
        response = load_response(path, cfg)
        fields = get_field_probabilities(response.content, response.trace())
    except StructprobError as exc:
        logger.error(f"Scoring failed for {path}: {exc}")
        raise click.ClickException(str(exc)) from exc

    if output_format.lower() == "json":
        click.echo(
            json.dumps({name: fp.model_dump() for name, fp in fields.items()}, indent=2)
        )
        return

    theme.section("Field Probabilities", console, "01")
    if not fields:
        console.print(theme.warn("No named fields found in the response content."))
        return
    console.print(theme.info(f"{len(fields)} field(s) scored from {_esc(str(path))}"))
    _render_scores(fields, precision if precision is not None else cfg.display_precision)


# ---------------------------------------------------------------------------
# reconstruct
# ---------------------------------------------------------------------------


@cli.command()
@click.argument(
    "response_file",
    required=False,
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Log details to stderr.")
def reconstruct(response_file: Optional[Path], verbose: bool) -> None:
    """Rebuild the generated text from the trace and compare it with the content.

    \b
    Examples:
      structprob reconstruct llmresponse.json
    """
    _start_session(verbose)
    logger = get_logger(__name__)
    path = _response_path(response_file)

    try:
        response = load_response(path)
        trace = response.trace()
    except StructprobError as exc:
        logger.error(f"Reconstruction failed for {path}: {exc}")
        raise click.ClickException(str(exc)) from exc

    records = response.content_token_log_probabilities
    signal_count = sum(1 for entry in trace if entry.has_signal)

    theme.section("Content", console, "01")
    console.print(_esc(response.content), highlight=False)

    theme.section("Trace", console, "02")
    t = theme.make_kv_table()
    t.add_row("tokens", str(len(trace)))
    t.add_row("tokens with signal", str(signal_count))
    t.add_row("trace bytes", str(sum(entry.byte_length for entry in trace)))
    t.add_row("content bytes", str(len(response.content.encode("utf-8"))))
    console.print(t)

    theme.section("Reconstructed Text", console, "03")
    console.print(_esc(reconstruct_text(records)), highlight=False)
    console.print()

    content_bytes = response.content.encode("utf-8")
    generated = reconstruct_bytes(trace)
    if generated == content_bytes:
        console.print(theme.ok("Trace bytes reproduce the content exactly."))
    elif generated.startswith(content_bytes):
        console.print(theme.ok("Content is a prefix of the trace bytes."))
    else:
        logger.warning(f"Trace bytes do not reproduce the content of {path}")
        log_text_content(logger, f"{path} content", response.content)
        log_text_content(logger, f"{path} trace", generated.decode("utf-8", errors="replace"))
        console.print(theme.warn("Trace bytes do not reproduce the content; offsets will not line up."))
        console.print(theme.info(f"Session log: {_esc(str(get_current_log_file()))}"))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group()
def config() -> None:
    """View STRUCTPROB configuration."""


@config.command("show")
def config_show() -> None:
    """Show current configuration.

    \b
    Examples:
      structprob config show
    """
    from .utils.logging import get_log_directory

    cfg = get_config()
    dump = cfg.model_dump()

    theme.section("Response File", console, "01")
    t = theme.make_kv_table()
    for key in ("response_file", "content_key", "logprobs_key", "logprob_key", "bytes_key", "token_key"):
        t.add_row(key, _esc(str(dump[key])))
    console.print(t)

    theme.section("Display & Paths", console, "02")
    t = theme.make_kv_table()
    t.add_row("display_precision", str(dump["display_precision"]))
    t.add_row("home_dir", _esc(str(dump["home_dir"])))
    t.add_row("log_dir", _esc(str(get_log_directory())))
    console.print(t)
