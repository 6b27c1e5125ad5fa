"""
Command line interface for commit_weaver.

``weaver commit`` turns the staged changes into one or several commits,
``weaver auto`` commits unattended while the developer works and
``weaver status`` shows the repository state. Exit codes are the
``EXIT_*`` constants below.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional

import click

from commit_weaver import __version__
from commit_weaver.config.loader import ConfigError, load_config
from commit_weaver.console import (
    ProgressIndicator,
    console_notifier,
    edit_message,
    format_timestamp,
    print_error,
    print_info,
    print_success,
    print_summary_box,
    print_warning,
    show_message_box,
)
from commit_weaver.grouping.grouper import GroupingError
from commit_weaver.grouping.llm_grouper import ClassifierGrouper
from commit_weaver.llm.claude_client import ClaudeClient, LLMError
from commit_weaver.llm.commit_message_generator import CommitMessageGenerator, OfflineMessageGenerator
from commit_weaver.llm.retry import RetryCancelled, RetryingClient, RetryPolicy
from commit_weaver.pipeline import CommitMode, CommitPipeline, SynthesisPlan, offline_grouper
from commit_weaver.scheduling import (
    default_spread_duration,
    generate_spread_timestamps,
    now,
    parse_duration,
    parse_start_time,
)
from commit_weaver.vcs.git_client import GitClient, GitError, StagedChanges
from commit_weaver.watch.deferred import DeferredSession
from commit_weaver.watch.lock import LockError, LockGuard, lock_path_for
from commit_weaver.watch.loop import WatchLoop
from commit_weaver.watch.session import AutoOptions, AutoSession, Decision, Review
from commit_weaver.watch.watcher import DebouncedWatcher


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_NO_REPO = 3
EXIT_NO_CHANGES = 4
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_LLM_FAILURE = 7
EXIT_ALL_DECLINED = 8
EXIT_LOCKED = 9


# ---------------------------------------------------------------------------
# Shared setup
# ---------------------------------------------------------------------------
def open_repository(start: Optional[Path] = None) -> GitClient:
    root = GitClient.find_repo_root(start or Path.cwd())
    if root is None:
        print_error("Not inside a Git repository.")
        raise click.exceptions.Exit(EXIT_NO_REPO)
    return GitClient(root)


def load_settings(repo_root: Path) -> Dict[str, Any]:
    try:
        return load_config(repo_root)
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)


def build_client(config: Dict[str, Any], cancel_event: Optional[threading.Event] = None) -> RetryingClient:
    """Classifier client with the configured retry policy."""
    if not config.get("api_key"):
        print_error("ANTHROPIC_API_KEY not set. Run: export ANTHROPIC_API_KEY=your_key (or use --offline)")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)
    client = ClaudeClient(
        api_key=config["api_key"],
        model=config["model"],
        request_timeout=float(config["request_timeout"]),
        max_tokens=int(config["max_tokens"]),
    )
    retry = config["retry"]
    policy = RetryPolicy(
        max_attempts=retry["max_attempts"],
        base_delay_ms=retry["base_delay_ms"],
        max_delay_ms=retry["max_delay_ms"],
    )
    return RetryingClient(client, policy, cancel_event=cancel_event)


def parse_schedule(spread: Optional[str], start: Optional[str]):
    try:
        spread_secs = parse_duration(spread) if spread else None
        start_at = parse_start_time(start) if start else None
    except ValueError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    return spread_secs, start_at


def show_changes(changes: StagedChanges, verbose: bool) -> None:
    print_info(
        f"{changes.summary()} (+{changes.stats.insertions}, -{changes.stats.deletions})"
    )
    if verbose:
        for path in changes.added:
            click.echo(f"   {click.style('+', fg='green')} {path}")
        for path in changes.modified:
            click.echo(f"   {click.style('M', fg='yellow')} {path}")
        for path in changes.deleted:
            click.echo(f"   {click.style('-', fg='red')} {path}")
        for old, new in changes.renamed:
            click.echo(f"   {click.style('R', fg='blue')} {old} → {new}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------
@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
@click.version_option(version=__version__, prog_name="weaver")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Turn pending edits into a history of plausible, atomic commits."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# commit
# ---------------------------------------------------------------------------
def _single_commit(
    pipeline: CommitPipeline,
    changes: StagedChanges,
    yes: bool,
    timestamp: Optional[datetime] = None,
) -> None:
    with ProgressIndicator("Generating commit message"):
        message = pipeline.generate_message(changes.diff)
    show_message_box(message, "Generated commit message")
    if not yes:
        choice = click.prompt(
            "   [A]ccept, [E]dit or [C]ancel",
            type=click.Choice(["a", "e", "c"], case_sensitive=False),
            default="a",
        ).lower()
        if choice == "c":
            print_warning("Commit cancelled.")
            raise click.exceptions.Exit(EXIT_ALL_DECLINED)
        if choice == "e":
            message = edit_message(message)
    sha = pipeline.commit_single(message, timestamp)
    print_success(f"Created commit {click.style(sha[:7], fg='cyan')}")
    print_info(message.splitlines()[0], indent=1)


def _preview(synthesis: SynthesisPlan) -> None:
    click.echo(f"\n{len(synthesis.plans)} commits planned:\n")
    for index, (plan, when) in enumerate(synthesis.planned(), 1):
        click.echo(
            f"{index}. {click.style(plan.message, fg='green')} → "
            f"{click.style(format_timestamp(when), dim=True)}"
        )
        if plan.description:
            click.echo(f"   {plan.description.splitlines()[0]}")
        click.echo(f"   {', '.join(synthesis.files_of(plan))}")


@main.command()
@click.option("--atomic", is_flag=True, help="Split into one commit per logical group of files.")
@click.option("--split", type=click.IntRange(min=1), help="Split into exactly N commits (implies --atomic).")
@click.option("--granular", is_flag=True, help="Group individual diff hunks instead of whole files.")
@click.option("--realistic", is_flag=True, help="Build new files up progressively, chunk by chunk.")
@click.option("--spread", help="Spread commit dates over a duration, e.g. 2h, 30m, 1d.")
@click.option("--start", help="Date of the first commit: 'YYYY-MM-DD HH:MM' or 'YYYY-MM-DD'.")
@click.option("--offline", is_flag=True, help="Use deterministic grouping and messages; no API calls.")
@click.option("--agent", "personality", help="Personality hint for generated messages.")
@click.option("--yes", "yes", is_flag=True, help="Accept the plan without prompting.")
@click.pass_context
def commit(
    ctx: click.Context,
    atomic: bool,
    split: Optional[int],
    granular: bool,
    realistic: bool,
    spread: Optional[str],
    start: Optional[str],
    offline: bool,
    personality: Optional[str],
    yes: bool,
) -> None:
    """Commit the staged changes, optionally split into several commits."""
    verbose = ctx.obj.get("verbose", False)
    if sum(bool(flag) for flag in (granular, realistic, atomic or split)) > 1:
        print_error("--atomic/--split, --granular and --realistic are mutually exclusive")
        raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    spread_secs, start_at = parse_schedule(spread, start)

    git = open_repository()
    config = load_settings(git.repo_root)
    notify = console_notifier(verbose)

    if realistic:
        mode = CommitMode.REALISTIC
    elif granular:
        mode = CommitMode.GRANULAR
    elif atomic or split:
        mode = CommitMode.ATOMIC
    else:
        mode = CommitMode.SINGLE

    try:
        changes = git.get_staged_changes()
        if changes.is_empty():
            print_warning("No staged changes to commit.")
            print_info("Stage changes with: git add <files>", indent=1)
            raise click.exceptions.Exit(EXIT_NO_CHANGES)
        show_changes(changes, verbose)

        if offline:
            messages = OfflineMessageGenerator()
            grouper_factory = partial(offline_grouper, notify=notify)
        else:
            client = build_client(config)
            messages = CommitMessageGenerator(client, personality or config.get("personality"))
            grouper_factory = partial(ClassifierGrouper, client, notify=notify)
        pipeline = CommitPipeline(
            git,
            grouper_factory,
            messages,
            notify=notify,
            realistic_threshold=config["commit"]["realistic_chunk_threshold"],
        )

        if mode is CommitMode.SINGLE:
            _single_commit(pipeline, changes, yes)
            return

        with ProgressIndicator("Analyzing changes"):
            synthesis = pipeline.plan(changes, mode, target=split, spread_secs=spread_secs, start=start_at)
        if synthesis is None:
            _single_commit(pipeline, changes, yes)
            return

        _preview(synthesis)
        if not yes:
            choice = click.prompt(
                "\n   [C]reate all, [S]ingle commit instead or [X] cancel",
                type=click.Choice(["c", "s", "x"], case_sensitive=False),
                default="c",
            ).lower()
            if choice == "x":
                print_warning("Cancelled; nothing committed.")
                raise click.exceptions.Exit(EXIT_ALL_DECLINED)
            if choice == "s":
                _single_commit(pipeline, changes, yes=True)
                return

        report = pipeline.execute(synthesis)
        created = report.commit_count
        print_success(f"Created {created} of {len(synthesis.plans)} commits")

        if report.has_leftovers or synthesis.missing:
            print_warning("Some changes were not committed.")
            if yes or click.confirm("   Commit the remaining changes in one final commit?", default=True):
                last = synthesis.timestamps[-1] if synthesis.timestamps else None
                leftover = pipeline.commit_leftovers(last, [plan.message for plan in synthesis.plans])
                if leftover:
                    created += 1
                    print_success(f"Created commit {leftover[0][:7]} {leftover[1].splitlines()[0]}")
        if created == 0:
            raise click.exceptions.Exit(EXIT_VCS_FAILURE)
    except (GroupingError, LLMError) as exc:
        print_error(f"Classifier error: {exc}")
        raise click.exceptions.Exit(EXIT_LLM_FAILURE)
    except GitError as exc:
        print_error(f"Git error: {exc}")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)


# ---------------------------------------------------------------------------
# auto
# ---------------------------------------------------------------------------
def _prompt_reviewer(defer: bool):
    """Interactive reviewer used by ``auto --prompt``."""

    def review(message: str, changes: StagedChanges) -> Review:
        show_message_box(message, "Proposed commit")
        print_info(changes.summary(), indent=1)
        choices = ["a", "e", "s"] + (["f"] if defer else [])
        label = "   [A]ccept, [E]dit, [S]kip" + (", [F]lush deferred" if defer else "")
        choice = click.prompt(label, type=click.Choice(choices, case_sensitive=False), default="a").lower()
        if choice == "s":
            return Review(Decision.SKIP)
        if choice == "f":
            return Review(Decision.FLUSH)
        if choice == "e":
            message = edit_message(message)
        while True:
            answer = click.prompt("   Timestamp ('now' or YYYY-MM-DD HH:MM)", default="now").strip()
            if answer.lower() == "now":
                return Review(Decision.ACCEPT, message)
            try:
                return Review(Decision.ACCEPT, message, parse_start_time(answer))
            except ValueError as exc:
                print_warning(str(exc))

    return review


def _finish_deferred(session: AutoSession, yes: bool, spread_secs, start_at) -> None:
    pending = len(session.deferred) if session.deferred else 0
    if not pending:
        return
    if not yes and not click.confirm(f"   Create {pending} deferred commit(s)?", default=True):
        dropped = session.deferred.discard()
        print_warning(f"Discarded {dropped} deferred commit(s)")
        return
    timestamps = None
    if spread_secs is not None or start_at is not None:
        duration = spread_secs if spread_secs is not None else default_spread_duration()
        timestamps = generate_spread_timestamps(pending, start_at or now(), duration)
    session.flush_deferred(timestamps)


@main.command()
@click.option("--watch", is_flag=True, help="Commit when files change (debounced file-system events).")
@click.option("--interval", type=click.FloatRange(min=1), help="Poll for changes every N seconds.")
@click.option("--max-commits", type=click.IntRange(min=1), help="Stop after this many commits.")
@click.option("--dry-run", is_flag=True, help="Show what would be committed without committing.")
@click.option("--prompt", "interactive", is_flag=True, help="Review every proposed commit.")
@click.option("--defer", is_flag=True, help="Collect commits and create them when the session ends.")
@click.option("--spread", help="With --defer: spread deferred commit dates over a duration.")
@click.option("--start", help="With --defer: date of the first deferred commit.")
@click.option("--squash", is_flag=True, help="Squash unpushed commits once they reach the threshold.")
@click.option("--squash-threshold", type=click.IntRange(min=2), help="Unpushed commits that trigger a squash.")
@click.option("--offline", is_flag=True, help="Use deterministic messages; no API calls.")
@click.option("--yes", "yes", is_flag=True, help="Create deferred commits without asking.")
@click.pass_context
def auto(
    ctx: click.Context,
    watch: bool,
    interval: Optional[float],
    max_commits: Optional[int],
    dry_run: bool,
    interactive: bool,
    defer: bool,
    spread: Optional[str],
    start: Optional[str],
    squash: bool,
    squash_threshold: Optional[int],
    offline: bool,
    yes: bool,
) -> None:
    """Commit changes automatically, once or continuously."""
    verbose = ctx.obj.get("verbose", False)
    if (spread or start) and not defer:
        print_error("--spread and --start require --defer")
        raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    if defer and dry_run:
        print_error("--defer and --dry-run cannot be combined")
        raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    spread_secs, start_at = parse_schedule(spread, start)

    git = open_repository()
    config = load_settings(git.repo_root)
    auto_config = config["auto"]
    notify = console_notifier(verbose)
    cancel_event = threading.Event()

    if offline:
        messages = OfflineMessageGenerator()
    else:
        messages = CommitMessageGenerator(build_client(config, cancel_event), config.get("personality"))

    options = AutoOptions(
        max_commits=max_commits or auto_config["max_commits"],
        dry_run=dry_run,
        defer=defer,
        squash=squash or auto_config["rewrite_history"],
        squash_threshold=squash_threshold or auto_config["squash_threshold"],
    )
    session = AutoSession(
        git,
        messages,
        options,
        notify=notify,
        reviewer=_prompt_reviewer(defer) if interactive else None,
        deferred=DeferredSession(git, notify) if defer else None,
    )

    exit_code = EXIT_SUCCESS
    try:
        with LockGuard(lock_path_for(git.repo_root, git.repo_root / ".git")):
            try:
                if watch or interval:
                    watcher = DebouncedWatcher(git.repo_root, auto_config["debounce_ms"] / 1000) if watch else None
                    tick = interval or float(auto_config["interval"])
                    if watch:
                        print_info(f"Watching {git.repo_root} for changes (max {options.max_commits} commits)")
                    else:
                        print_info(f"Checking for changes every {tick:g}s (max {options.max_commits} commits)")
                    print_info("Press Ctrl+C to stop", indent=1)
                    loop = WatchLoop(session.handle, interval=tick, watcher=watcher, cancel_event=cancel_event)
                    asyncio.run(loop.run())
                else:
                    session.handle("startup", set())
                    stats = session.stats
                    if stats.failed:
                        exit_code = EXIT_VCS_FAILURE
                    elif not (stats.produced or stats.previewed or stats.skipped):
                        print_info("No changes to commit.")
                        exit_code = EXIT_NO_CHANGES
            except RetryCancelled:
                print_warning("Stopped while waiting to retry the classifier.")
            except (GroupingError, LLMError) as exc:
                print_error(f"Classifier error: {exc}")
                exit_code = EXIT_LLM_FAILURE
            except GitError as exc:
                print_error(f"Git error: {exc}")
                exit_code = EXIT_VCS_FAILURE
            finally:
                try:
                    _finish_deferred(session, yes, spread_secs, start_at)
                except GitError as exc:
                    print_error(f"Could not create deferred commits: {exc}")
                    exit_code = EXIT_VCS_FAILURE
    except LockError as exc:
        print_error(str(exc))
        raise click.exceptions.Exit(EXIT_LOCKED)

    stats = session.stats
    items = [f"Committed: {stats.committed}"]
    if stats.previewed:
        items.append(f"Previewed (dry run): {stats.previewed}")
    if stats.skipped:
        items.append(f"Skipped: {stats.skipped}")
    if stats.squashed:
        items.append(f"Squashed: {stats.squashed}")
    if stats.failed:
        items.append(f"Failed (git): {stats.failed}")
    print_summary_box("Session summary", items)
    if exit_code != EXIT_SUCCESS:
        raise click.exceptions.Exit(exit_code)


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------
@main.command()
def status() -> None:
    """Show branch, staged changes, recent commits and unpushed count."""
    git = open_repository()
    try:
        click.echo(f"Repository: {git.repo_root}")
        click.echo(f"Branch:     {click.style(git.get_current_branch(), fg='cyan', bold=True)}")
        changes = git.get_staged_changes()
        if changes.is_empty():
            print_info("No staged changes")
        else:
            print_info(
                f"Staged: {changes.summary()} "
                f"({click.style('+' + str(changes.stats.insertions), fg='green')}, "
                f"{click.style('-' + str(changes.stats.deletions), fg='red')})"
            )
        if git.has_uncommitted_changes():
            print_warning("Working tree has uncommitted changes")
        recent = git.get_recent_commits(5)
        if recent:
            click.echo("\nRecent commits:")
            for subject in recent:
                click.echo(f"  • {subject}")
        unpushed = git.count_unpushed_commits()
        if unpushed:
            print_info(f"{unpushed} unpushed commit(s)")
    except GitError as exc:
        print_error(f"Git error: {exc}")
        raise click.exceptions.Exit(EXIT_VCS_FAILURE)
