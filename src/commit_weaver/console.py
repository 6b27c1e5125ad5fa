"""
Console output helpers shared by the CLI commands.

Every line goes through :func:`click.echo` so that ``CliRunner`` can
capture it in tests. :func:`console_notifier` adapts engine notices to
these helpers.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from typing import List, Optional

import click

from commit_weaver.notices import Notifier


class ProgressIndicator:
    """Simple progress indicator for user feedback."""

    def __init__(self, message: str, show_spinner: bool = True):
        self.message = message
        self.show_spinner = show_spinner
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        if self.show_spinner:
            click.echo(f"⠋ {self.message}...", nl=False)
        else:
            click.echo(f"→ {self.message}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = time.time() - self.start_time
        mark = "✓" if exc_type is None else "✗"
        if self.show_spinner:
            click.echo(f"\r{mark} {self.message} (took {elapsed:.1f}s)")
        else:
            click.echo(f"  {mark} Done ({elapsed:.1f}s)")
        return False


def print_step(step_num: int, total_steps: int, message: str):
    """Print a step indicator."""
    click.echo(f"\n{'=' * 60}")
    click.echo(f"Step {step_num}/{total_steps}: {message}")
    click.echo(f"{'=' * 60}")


def print_info(message: str, indent: int = 0):
    click.echo(f"{'  ' * indent}ℹ {message}")


def print_success(message: str, indent: int = 0):
    click.echo(f"{'  ' * indent}✓ {message}")


def print_warning(message: str, indent: int = 0):
    click.echo(f"{'  ' * indent}⚠ {message}")


def print_error(message: str, indent: int = 0):
    click.echo(f"{'  ' * indent}✗ {message}", err=True)


def print_summary_box(title: str, items: List[str]):
    """Print a formatted summary box."""
    max_width = max([len(title)] + [len(item) for item in items])
    box_width = min(max_width + 4, 60)
    click.echo(f"\n┌{'─' * box_width}┐")
    click.echo(f"│ {title[:box_width - 2].ljust(box_width - 2)}│")
    click.echo(f"├{'─' * box_width}┤")
    for item in items:
        click.echo(f"│ {item[:box_width - 2].ljust(box_width - 2)}│")
    click.echo(f"└{'─' * box_width}┘")


def console_notifier(verbose: bool = False) -> Notifier:
    """Render engine notices with the print helpers; debug notices only when verbose."""

    def notify(level: int, message: str) -> None:
        if level >= logging.ERROR:
            print_error(message, indent=1)
        elif level >= logging.WARNING:
            print_warning(message, indent=1)
        elif level >= logging.INFO:
            print_info(message, indent=1)
        elif verbose:
            click.echo(f"    {message}")

    return notify


def edit_message(message: str) -> str:
    """Let the user edit ``message``; returns the original when the edit is empty.

    Uses ``$EDITOR`` when set, otherwise reads lines until a single ``.``.
    """
    editor = os.environ.get("EDITOR")
    if editor:
        with tempfile.NamedTemporaryFile(mode="w+", delete=False, suffix=".txt", encoding="utf-8") as tmp:
            tmp.write(message)
            tmp_path = tmp.name
        try:
            subprocess.run([editor, tmp_path], check=True)
            with open(tmp_path, "r", encoding="utf-8") as handle:
                edited = handle.read().strip()
        except (OSError, subprocess.CalledProcessError) as exc:
            print_error(f"Editor failed: {exc}")
            edited = ""
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
    else:
        click.echo("   Enter your commit message. End with a line containing only a period (.)")
        lines: List[str] = []
        while True:
            line = click.prompt("   ", default="", show_default=False)
            if line.strip() == ".":
                break
            lines.append(line)
        edited = "\n".join(lines).strip()
    if not edited:
        print_warning("Empty message, using original")
        return message
    print_success("Message edited")
    return edited


def format_timestamp(value) -> str:
    return value.strftime("%b %d, %H:%M:%S") if value is not None else "now"


def show_message_box(message: str, title: Optional[str] = None) -> None:
    if title:
        click.echo(f"\n💬 {title}")
    click.echo("   ┌" + "─" * 56 + "┐")
    for line in message.splitlines() or [""]:
        click.echo(f"   │ {line[:54].ljust(54)} │")
    click.echo("   └" + "─" * 56 + "┘")
