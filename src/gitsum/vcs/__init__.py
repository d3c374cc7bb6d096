"""
Version control system (VCS) integrations.

This package contains the Git client, the resolver that turns reference
strings into concrete repository points, and a thin wrapper around the
GitHub CLI used to open pull requests.
"""

from .git_client import GitClient, GitError  # noqa: F401
from .gh_client import GhClient, GhError  # noqa: F401
from .ref_resolver import RefKind, RefResolver, RepoRef  # noqa: F401
