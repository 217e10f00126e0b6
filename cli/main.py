"""pagedistill CLI: entry-point for scraping and conversion.

Usage:
    python cli/main.py --help

Commands:
    scrape   → fetch (and render if needed) a URL, print HTML or markdown
    convert  → normalize a local HTML file to markdown

Output goes to stdout (or ``--out``); progress and logs go to stderr.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from pagedistill.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any working
# directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
from typing import Optional

import typer

from pagedistill.config import settings
from pagedistill.exceptions import AcquisitionError
from pagedistill.logging_config import configure_logging

app = typer.Typer(
    name="pagedistill",
    help="Turn web pages into clean, de-duplicated, model-ready text.",
    no_args_is_help=True,
)


def _seconds(ms: Optional[int], option: str) -> Optional[float]:
    if ms is None:
        return None
    if ms <= 0:
        raise typer.BadParameter("must be a positive number of milliseconds", param_hint=option)
    return ms / 1000


def _emit(text: str, out: Optional[Path], label: str) -> None:
    if out is None:
        typer.echo(text)
        return
    out.write_text(text, encoding="utf-8")
    typer.echo(f"[{label}] Wrote {len(text)} characters to {out}", err=True)


# ---------------------------------------------------------------------------
# scrape
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    url: str = typer.Argument(..., help="URL to scrape."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write output to this file instead of stdout."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Request and render timeout in ms."),
    term: Optional[str] = typer.Option(None, "--term", help="Term anchoring radial extraction."),
    radial: bool = typer.Option(False, "--radial/--no-radial", help="Extract fragments around --term."),
    radius_levels: Optional[int] = typer.Option(None, "--radius-levels", min=0, help="Ancestor levels to climb."),
    min_repeat: Optional[int] = typer.Option(None, "--min-repeat", min=1, help="Siblings that make a repeated card."),
    method: str = typer.Option("fixed", "--method", help="Radial method: fixed | repeat."),
    render_links: bool = typer.Option(False, "--render-links/--no-render-links", help="Append linked pages."),
    max_links: Optional[int] = typer.Option(None, "--max-links", min=0, help="Maximum linked pages."),
    link_timeout: Optional[int] = typer.Option(None, "--link-timeout", help="Per-link render timeout in ms."),
    force_browser: bool = typer.Option(False, "--force-browser", help="Skip the plain-fetch probe."),
    html: bool = typer.Option(False, "--html", help="Output the rendered HTML instead of markdown."),
    diagnose: bool = typer.Option(False, "--diagnose", help="Verbose logging, including page console output."),
    insecure: bool = typer.Option(settings.insecure, "--insecure/--secure", help="Skip TLS certificate checks."),
) -> None:
    """Scrape a URL and print raw HTML or markdown."""
    from pagedistill.scraper import ScrapeOptions, distill

    if radial and not term:
        raise typer.BadParameter("--radial requires --term", param_hint="--radial")
    if method not in ("fixed", "repeat"):
        raise typer.BadParameter(f"unknown method {method!r}; use fixed | repeat", param_hint="--method")

    overrides = {
        "timeout": _seconds(timeout, "--timeout"),
        "term": term,
        "radial": radial,
        "method": method,
        "radius_levels": radius_levels,
        "min_repeat": min_repeat,
        "render_links": render_links,
        "max_links": max_links,
        "link_timeout": _seconds(link_timeout, "--link-timeout"),
        "force_browser": force_browser,
        "full_html": html,
        "diagnose": diagnose,
        "insecure": insecure,
    }
    options = ScrapeOptions(**{k: v for k, v in overrides.items() if v is not None})

    configure_logging("DEBUG" if diagnose else settings.log_level)
    typer.echo(f"[scrape] Fetching {url!r} …", err=True)
    try:
        result = asyncio.run(distill(url, options))
    except AcquisitionError as exc:
        typer.echo(f"[scrape] Error: {exc}", err=True)
        raise typer.Exit(1)

    _emit(result, out, "scrape")


# ---------------------------------------------------------------------------
# convert
# ---------------------------------------------------------------------------
@app.command("convert")
def convert(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Local HTML file."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Resolve relative links against this URL."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write output to this file instead of stdout."),
) -> None:
    """Normalize a local HTML file to markdown."""
    from pagedistill.convert import dedupe, to_markdown

    configure_logging(settings.log_level)
    source = path.read_text(encoding="utf-8", errors="replace")
    _emit(dedupe(to_markdown(source, base_url=base_url)), out, "convert")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
