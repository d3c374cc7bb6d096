"""
Git client implementation for gitsum.

This module wraps the Git commands needed to resolve references and
read diffs. Apart from :meth:`GitClient.commit` every command is
read-only. All subprocess calls go through :meth:`GitClient._run` so
that unit tests can mock them easily.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)
# Attach a null handler to avoid logging errors when the root logger is not
# configured. Logs propagate to the root once the CLI configures it.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


# Options that pin diff output regardless of the user's git configuration.
DIFF_CONFIG = ["-c", "core.quotePath=false", "-c", "diff.noprefix=false", "-c", "diff.mnemonicPrefix=false"]
DIFF_OPTIONS = ["--no-color", "--no-ext-diff", "--find-renames"]

# Hash of the empty tree, used as the parent side of root commits.
EMPTY_TREE_IDS = {
    "sha1": "4b825dc642cb6eb9a060e54bf8d69288fbee4904",
    "sha256": "6ef19b41225c5369f1c104d45d8d85efa9b057b53b14b4b9b939dd74decc5321",
}

HASH_LENGTHS = {"sha1": 40, "sha256": 64}


class GitError(Exception):
    """Raised when a Git command fails."""

    pass


class GitClient:
    """Client for interacting with a Git repository."""

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root
        self._object_format: Optional[str] = None

    # ------------------------------------------------------------------
    # Static helpers
    # ------------------------------------------------------------------
    @staticmethod
    def is_repo(path: Path) -> bool:
        """Return True if the given path is the root of a Git repository."""
        return (path / ".git").exists()

    @staticmethod
    def find_repo_root(start: Path) -> Optional[Path]:
        """Find the root of the Git repository starting from ``start``.

        Walk upwards until a ``.git`` entry is found or the filesystem
        root is reached.
        """
        current = start.resolve()
        while True:
            if (current / ".git").exists():
                return current
            if current.parent == current:
                return None
            current = current.parent

    # ------------------------------------------------------------------
    # Basic Git commands
    # ------------------------------------------------------------------
    def _run(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a Git command in the repository root.

        Raises
        ------
        GitError
            If the command exits with a non-zero status when ``check`` is True.
        """
        full_cmd = ["git"] + args
        logger.debug("Executing Git command: %s", " ".join(full_cmd))
        try:
            result = subprocess.run(
                full_cmd,
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to execute Git: %s", e)
            raise GitError(f"Failed to execute Git: {e}") from e

        if check and result.returncode != 0:
            logger.error(
                "Git command failed: %s\nSTDOUT: %s\nSTDERR: %s",
                " ".join(full_cmd),
                result.stdout,
                result.stderr,
            )
            raise GitError(result.stderr.strip() or result.stdout.strip())
        return result

    # ------------------------------------------------------------------
    # Repository metadata
    # ------------------------------------------------------------------
    def object_format(self) -> str:
        """Return the hash algorithm of the repository (``sha1`` or ``sha256``).

        Git versions that predate SHA-256 support do not know
        ``--show-object-format``; those repositories are always SHA-1.
        """
        if self._object_format is None:
            result = self._run(["rev-parse", "--show-object-format"], check=False)
            fmt = result.stdout.strip()
            if result.returncode != 0 or fmt not in HASH_LENGTHS:
                fmt = "sha1"
            self._object_format = fmt
        return self._object_format

    def hash_length(self) -> int:
        """Number of hex digits in a full object name."""
        return HASH_LENGTHS[self.object_format()]

    def empty_tree_id(self) -> str:
        """Object name of the empty tree for this repository's hash format."""
        return EMPTY_TREE_IDS[self.object_format()]

    def get_current_branch(self) -> str:
        """Get the name of the current branch.

        Raises
        ------
        GitError
            If unable to determine the current branch.
        """
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"], check=True)
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Reference lookups
    # ------------------------------------------------------------------
    def ref_exists(self, refname: str) -> bool:
        """Return True if the fully qualified ``refname`` exists."""
        result = self._run(["show-ref", "--verify", "--quiet", refname], check=False)
        return result.returncode == 0

    def rev_parse_commit(self, revision: str) -> Optional[str]:
        """Peel ``revision`` to a commit and return its full hash.

        Returns ``None`` when the revision does not exist or does not
        point at a commit.
        """
        result = self._run(
            ["rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}"],
            check=False,
        )
        sha = result.stdout.strip()
        if result.returncode != 0 or not sha:
            return None
        return sha

    def object_exists(self, object_name: str) -> bool:
        """Return True if ``object_name`` names an object of any type."""
        result = self._run(["cat-file", "-e", object_name], check=False)
        return result.returncode == 0

    def disambiguate(self, prefix: str) -> List[str]:
        """List every object whose name starts with ``prefix``.

        Git requires the prefix to be at least four hex digits long.
        """
        result = self._run(["rev-parse", f"--disambiguate={prefix}"], check=False)
        if result.returncode != 0:
            return []
        return sorted({line.strip() for line in result.stdout.splitlines() if line.strip()})

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def rev_list(self, commit: str, count: int) -> List[str]:
        """Return up to ``count`` commit hashes reachable from ``commit``, newest first."""
        result = self._run(["rev-list", f"--max-count={count}", commit], check=True)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def commit_subject(self, commit: str) -> str:
        """Return the first line of the message of ``commit``."""
        result = self._run(["log", "-1", "--format=%s", commit], check=True)
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Diffs
    # ------------------------------------------------------------------
    def diff(self, args: List[str]) -> str:
        """Run ``git diff`` with pinned output options and return the patch text.

        Parameters
        ----------
        args : List[str]
            Extra arguments such as ``--cached``, ``-R`` or revisions.
        """
        result = self._run(DIFF_CONFIG + ["diff"] + DIFF_OPTIONS + args, check=True)
        return result.stdout

    # ------------------------------------------------------------------
    # Committing
    # ------------------------------------------------------------------
    def commit(self, message: str) -> None:
        """Create a commit from the staged changes with the given message.

        Multi-line commit messages are supported. If the commit fails,
        a GitError is raised.
        """
        self._run(["commit", "-m", message], check=True)
