"""
Pull request creation through the GitHub CLI.

Once the pipeline has produced a validated title and body, the
:class:`GhClient` hands them to ``gh pr create``. Authentication and
remote selection are left to ``gh`` itself.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class GhError(Exception):
    """Raised when the ``gh`` CLI is missing or fails."""

    pass


class GhClient:
    """Thin wrapper around the ``gh`` executable."""

    def __init__(self, repo_root: Path, executable: str = "gh") -> None:
        self.repo_root = repo_root
        self.executable = executable

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        full_cmd = [self.executable] + args
        # The body can be long; only log the subcommand.
        logger.debug("Executing gh command: %s", " ".join(full_cmd[:3]))
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
        except OSError as exc:
            logger.error("Failed to execute %s: %s", self.executable, exc)
            raise GhError(f"Could not run '{self.executable}': {exc}") from exc
        if result.returncode != 0:
            logger.error("gh command failed: %s", result.stderr.strip())
            raise GhError(f"Failed to create PR: {result.stderr.strip() or result.stdout.strip()}")
        return result

    def create_pull_request(self, title: str, body: str, base: Optional[str] = None) -> str:
        """Create a pull request for the current branch.

        Returns
        -------
        str
            Whatever ``gh`` printed, usually the URL of the new pull request.

        Raises
        ------
        GhError
            If ``gh`` is not installed or exits with a non-zero status.
        """
        args = ["pr", "create", "--title", title, "--body", body]
        if base:
            args += ["--base", base]
        return self._run(args).stdout.strip()
