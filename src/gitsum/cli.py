"""
Command line interface for gitsum.

This module defines the ``main`` click group used as the entry point of
the ``gitsum`` command. Each subcommand detects the repository, loads
the configuration once, runs one pipeline operation and renders either
the artifact or the typed error. Exit codes are listed below.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

import click

from gitsum import __version__
from gitsum.config.loader import AppConfig, ConfigError, load_config
from gitsum.errors import (
    ChainExhaustedError,
    ExtractionError,
    GitSumError,
    NoChangesError,
    RefNotFoundError,
    ResolutionError,
    ValidationError,
)
from gitsum.llm.provider_chain import ANTHROPIC, OPENAI
from gitsum.pipeline import Pipeline
from gitsum.vcs.gh_client import GhClient, GhError
from gitsum.vcs.git_client import GitClient, GitError


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


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
EXIT_VALIDATION_FAILURE = 8
EXIT_PR_FAILURE = 9
EXIT_INTERRUPTED = 130

DEFAULT_PR_BASE = "main"


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------
class ProgressIndicator:
    """Print a status line before and after a slow step."""

    def __init__(self, message: str) -> None:
        self.message = message
        self.start_time = 0.0

    def __enter__(self) -> "ProgressIndicator":
        self.start_time = time.time()
        click.echo(f"→ {self.message}...", err=True)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            click.echo(f"  ✓ Done ({time.time() - self.start_time:.1f}s)", err=True)
        return False


def print_info(message: str, indent: int = 0) -> None:
    click.echo(f"{'  ' * indent}ℹ {message}", err=True)


def print_success(message: str, indent: int = 0) -> None:
    click.echo(f"{'  ' * indent}✓ {message}", err=True)


def print_warning(message: str, indent: int = 0) -> None:
    click.echo(f"{'  ' * indent}⚠ {message}", err=True)


def print_error(message: str, indent: int = 0) -> None:
    """Print an error; multi-line messages keep their indentation."""
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def exit_code_for(exc: Exception) -> int:
    """Map an error family to the exit code of the command."""
    if isinstance(exc, NoChangesError):
        return EXIT_NO_CHANGES
    if isinstance(exc, (ResolutionError, ExtractionError, GitError)):
        return EXIT_VCS_FAILURE
    if isinstance(exc, ChainExhaustedError):
        return EXIT_LLM_FAILURE
    if isinstance(exc, ValidationError):
        return EXIT_VALIDATION_FAILURE
    if isinstance(exc, GhError):
        return EXIT_PR_FAILURE
    if isinstance(exc, ConfigError):
        return EXIT_CONFIG_ERROR
    return EXIT_GENERIC_ERROR


def describe_error(exc: Exception) -> str:
    """Human-readable one-paragraph description of a failure."""
    if isinstance(exc, ResolutionError):
        kind = "Reference resolution failed"
    elif isinstance(exc, ExtractionError):
        kind = "Diff extraction failed"
    elif isinstance(exc, ChainExhaustedError):
        kind = "AI request failed"
    elif isinstance(exc, ValidationError):
        kind = "AI response rejected"
    elif isinstance(exc, GhError):
        kind = "Pull request creation failed"
    elif isinstance(exc, GitError):
        kind = "Git command failed"
    else:
        kind = "Error"
    stage = getattr(exc, "stage", None)
    suffix = f" (while {stage.value})" if stage is not None and hasattr(stage, "value") else ""
    return f"{kind}{suffix}: {exc}"


def fail(exc: Exception) -> "click.exceptions.Exit":
    print_error(describe_error(exc))
    return click.exceptions.Exit(exit_code_for(exc))


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------
def detect_repo(start_dir: Path) -> Path:
    """Return the Git repository root containing ``start_dir``.

    Raises
    ------
    click.exceptions.Exit
        With ``EXIT_NO_REPO`` when no repository is found.
    """
    repo_root = GitClient.find_repo_root(start_dir)
    if repo_root is None:
        print_error("No Git repository found in current directory or parent directories.")
        raise click.exceptions.Exit(EXIT_NO_REPO)
    logger.debug("Repository root: %s", repo_root)
    return repo_root


def build_pipeline(ctx: click.Context) -> Pipeline:
    """Create the pipeline for the repository around the current directory."""
    repo_root = detect_repo(Path.cwd())
    try:
        config: AppConfig = load_config(repo_root)
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)

    providers = config.providers
    forced = ctx.obj.get("model")
    if forced:
        logger.info("Using enforced model provider: %s", forced)
        providers = providers.only(forced)
    if not providers.available:
        print_warning("No API key found for the selected provider(s).")

    ctx.obj["repo_root"] = repo_root
    return Pipeline(GitClient(repo_root), providers, max_diff_bytes=config.max_diff_bytes)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose (debug) output.")
@click.option(
    "--model",
    type=click.Choice([ANTHROPIC, OPENAI]),
    help="Force a specific AI model provider instead of the default fallback order.",
)
@click.version_option(version=__version__, prog_name="gitsum")
@click.pass_context
def main(ctx: click.Context, verbose: bool, model: Optional[str]) -> None:
    """AI summaries, commit messages and pull request descriptions for Git."""
    # force=True so repeated invocations (tests) reconfigure the handlers
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )
    ctx.ensure_object(dict)
    ctx.obj["model"] = model


@main.command()
@click.argument("from_ref", default="HEAD")
@click.argument("to_ref", required=False)
@click.option("--staged", "-s", is_flag=True, help="Summarize the staged changes instead.")
@click.option(
    "--prompt",
    help="Custom prompt for AI summarization (e.g. 'Focus on security changes').",
)
@click.pass_context
def diff(ctx: click.Context, from_ref: str, to_ref: Optional[str], staged: bool, prompt: Optional[str]) -> None:
    """Summarize changes between two references.

    FROM_REF and TO_REF accept branches, tags, full or short hashes and
    relative expressions such as HEAD~2. TO_REF defaults to the working
    tree; ':staged' and ':worktree' name the index and the working tree.
    """
    pipeline = build_pipeline(ctx)
    try:
        with ProgressIndicator("Summarizing changes"):
            if staged:
                summary = pipeline.summarize_staged(focus_hint=prompt)
            else:
                summary = pipeline.summarize_diff(from_ref, to_ref or ":worktree", focus_hint=prompt)
    except GitSumError as exc:
        raise fail(exc)
    click.echo("Changes Summary:")
    click.echo(summary.text)


@main.command()
@click.option("--prompt", help="Extra instruction for the commit message.")
@click.option("--yes", "yes", is_flag=True, help="Commit without asking for confirmation.")
@click.option("--dry-run", is_flag=True, help="Only print the message, never commit.")
@click.pass_context
def commit(ctx: click.Context, prompt: Optional[str], yes: bool, dry_run: bool) -> None:
    """Generate a commit message for the staged changes and commit them."""
    pipeline = build_pipeline(ctx)
    try:
        with ProgressIndicator("Generating commit message"):
            message = pipeline.generate_commit_message(focus_hint=prompt)
    except NoChangesError:
        print_warning("No staged changes to commit.")
        raise click.exceptions.Exit(EXIT_NO_CHANGES)
    except GitSumError as exc:
        raise fail(exc)

    click.echo(message.text)
    if dry_run:
        return
    if not yes and not click.confirm("\nCreate commit with this message?", default=True):
        print_info("Commit cancelled")
        return
    try:
        pipeline.git.commit(message.text)
    except GitError as exc:
        raise fail(exc)
    print_success("Created commit")


@main.command()
@click.option("--base", help=f"Base branch for the PR (default: {DEFAULT_PR_BASE}).")
@click.option("--title", help="Custom PR title (AI-generated when omitted).")
@click.option("--body", help="Custom PR description (AI-generated when omitted).")
@click.option("--prompt", help="Extra instruction for the PR description.")
@click.option("--dry-run", is_flag=True, help="Print the title and body without creating the PR.")
@click.pass_context
def pr(
    ctx: click.Context,
    base: Optional[str],
    title: Optional[str],
    body: Optional[str],
    prompt: Optional[str],
    dry_run: bool,
) -> None:
    """Create a pull request with an AI-generated title and description."""
    pipeline = build_pipeline(ctx)
    base_ref = base or DEFAULT_PR_BASE
    # gh wants the branch name on the remote, never a remote-tracking ref
    gh_base = base_ref[len("origin/"):] if base_ref.startswith("origin/") else base_ref

    if not (title and body):
        try:
            with ProgressIndicator(f"Describing changes against {base_ref}"):
                try:
                    content = pipeline.generate_pr_content(base_ref, focus_hint=prompt)
                except RefNotFoundError:
                    if "/" in base_ref:
                        raise
                    print_info(f"Branch '{base_ref}' not found locally, using origin/{base_ref}")
                    content = pipeline.generate_pr_content(f"origin/{base_ref}", focus_hint=prompt)
        except GitSumError as exc:
            raise fail(exc)
        title = title or content.title
        body = body or content.body

    click.echo(f"Title: {title}\n")
    click.echo(body)
    if dry_run:
        return
    try:
        with ProgressIndicator("Creating pull request"):
            url = GhClient(ctx.obj["repo_root"]).create_pull_request(title, body, gh_base)
    except GhError as exc:
        raise fail(exc)
    print_success(f"Pull request created successfully! {url}".rstrip())


@main.command()
@click.argument("reference", default="HEAD")
@click.option("--count", "-n", default=5, show_default=True, type=click.IntRange(min=1), help="Number of commits to summarize.")
@click.option("--prompt", help="Custom prompt for AI summarization.")
@click.pass_context
def history(ctx: click.Context, reference: str, count: int, prompt: Optional[str]) -> None:
    """Summarize the most recent commits reachable from REFERENCE."""
    pipeline = build_pipeline(ctx)
    try:
        with ProgressIndicator(f"Summarizing {count} commit(s)"):
            entries = pipeline.summarize_history(reference, count, focus_hint=prompt)
    except GitSumError as exc:
        raise fail(exc)

    click.echo("Git History Summary:\n")
    for idx, entry in enumerate(entries):
        if idx:
            click.echo("\n---\n")
        click.echo(f"Commit {entry.commit[:7]} - {entry.subject}")
        click.echo(entry.summary.text)


def run(argv: Optional[List[str]] = None) -> None:
    """Console script entry point; turns Ctrl-C into a clean exit.

    click's standalone mode would report an interrupt as "Aborted!" with
    exit code 1, so usage errors and aborts are rendered here instead.
    """
    try:
        code = main.main(args=argv, prog_name="gitsum", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code)
    except (click.Abort, KeyboardInterrupt):
        print_error("Interrupted")
        raise SystemExit(EXIT_INTERRUPTED)
    raise SystemExit(code or EXIT_SUCCESS)
