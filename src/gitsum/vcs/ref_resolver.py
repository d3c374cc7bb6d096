"""
Reference resolution for gitsum.

:class:`RefResolver` turns a user supplied string into a
:class:`RepoRef`, the concrete endpoint a diff is computed against.
Queries are interpreted in a fixed order and the first kind that finds
something wins:

1. exact branch name (local, then remote-tracking)
2. exact tag name
3. full-length commit hash
4. short hash of at least four hex digits, which must be unique
5. relative expression such as ``HEAD~2`` or ``main^``

Only "not found" moves on to the next kind. A kind that finds
something unusable (a tag on a blob, an ambiguous prefix, a walk past
the root commit) raises immediately. Two reserved literals,
``:staged`` and ``:worktree``, name the index and the working tree;
git ref names can never start with a colon, so they never shadow a
branch.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from gitsum.errors import (
    AmbiguousRefError,
    InvalidRelativeExpressionError,
    RefNotFoundError,
)
from gitsum.vcs.git_client import GitClient


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


STAGED_LITERAL = ":staged"
WORKING_TREE_LITERAL = ":worktree"

MIN_SHORT_HASH_LENGTH = 4
# Upper bound on the candidates kept for an ambiguity report.
MAX_CANDIDATES = 32

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_SUFFIX_RE = re.compile(r"^(?:[~^]\d*)+$")
_HEAD_ALIASES = ("HEAD", "@")


class RefKind(Enum):
    """What a resolved endpoint refers to."""

    COMMIT = "commit"
    STAGED_INDEX = "staged"
    WORKING_TREE = "worktree"


@dataclass(frozen=True)
class RepoRef:
    """A resolved, immutable comparison endpoint.

    Attributes
    ----------
    kind : RefKind
        Commit, staged index or working tree.
    resolved_id : Optional[str]
        Full hash for commits, ``None`` for the index and working tree.
    label : str
        The query the endpoint was resolved from, for display.
    """

    kind: RefKind
    resolved_id: Optional[str] = None
    label: str = ""

    @classmethod
    def staged(cls) -> "RepoRef":
        return cls(RefKind.STAGED_INDEX, None, STAGED_LITERAL)

    @classmethod
    def working_tree(cls) -> "RepoRef":
        return cls(RefKind.WORKING_TREE, None, WORKING_TREE_LITERAL)

    @property
    def is_commit(self) -> bool:
        return self.kind is RefKind.COMMIT

    def __str__(self) -> str:
        if self.is_commit:
            short = (self.resolved_id or "")[:7]
            if self.label and self.label != self.resolved_id:
                return f"{self.label} ({short})"
            return short
        return self.label or self.kind.value


class RefResolver:
    """Resolve reference strings against a Git repository.

    Resolution only reads from the repository, so a failed resolution
    can be retried safely.
    """

    def __init__(self, git_client: GitClient) -> None:
        self.git = git_client

    def resolve(self, query: str, allow_staged: bool = False) -> RepoRef:
        """Resolve ``query`` to exactly one :class:`RepoRef`.

        Parameters
        ----------
        query : str
            Branch, tag, full or short hash, relative expression, or one
            of the reserved literals.
        allow_staged : bool, optional
            Whether ``:staged`` may be used. When False the literal is
            treated like any other string and will not be found.

        Raises
        ------
        RefNotFoundError
            Nothing matches, or the match does not point at a commit.
        AmbiguousRefError
            A short hash matches two or more objects.
        InvalidRelativeExpressionError
            A relative expression is malformed or leaves the history.
        """
        query = (query or "").strip()
        if allow_staged and query == STAGED_LITERAL:
            return RepoRef.staged()
        if query == WORKING_TREE_LITERAL:
            return RepoRef.working_tree()
        if not query or query.startswith("-"):
            raise RefNotFoundError(query)

        for lookup in (
            self._lookup_branch,
            self._lookup_tag,
            self._lookup_full_hash,
            self._lookup_short_hash,
            self._lookup_relative,
        ):
            ref = lookup(query)
            if ref is not None:
                logger.debug("Resolved '%s' via %s to %s", query, lookup.__name__, ref.resolved_id)
                return ref
        raise RefNotFoundError(query)

    # ------------------------------------------------------------------
    # Individual kinds. Each returns None for "not found" and raises for
    # "found but invalid".
    # ------------------------------------------------------------------
    def _lookup_branch(self, query: str) -> Optional[RepoRef]:
        for namespace in ("refs/heads/", "refs/remotes/"):
            refname = namespace + query
            if not self.git.ref_exists(refname):
                continue
            sha = self.git.rev_parse_commit(refname)
            if sha is None:
                raise RefNotFoundError(query, f"branch {refname} does not point at a commit")
            return RepoRef(RefKind.COMMIT, sha, query)
        return None

    def _lookup_tag(self, query: str) -> Optional[RepoRef]:
        refname = "refs/tags/" + query
        if not self.git.ref_exists(refname):
            return None
        sha = self.git.rev_parse_commit(refname)
        if sha is None:
            raise RefNotFoundError(query, "tag does not point at a commit")
        return RepoRef(RefKind.COMMIT, sha, query)

    def _lookup_full_hash(self, query: str) -> Optional[RepoRef]:
        if not _HEX_RE.match(query) or len(query) != self.git.hash_length():
            return None
        object_name = query.lower()
        sha = self.git.rev_parse_commit(object_name)
        if sha is not None:
            return RepoRef(RefKind.COMMIT, sha, query)
        if self.git.object_exists(object_name):
            raise RefNotFoundError(query, "object is not a commit")
        return None

    def _lookup_short_hash(self, query: str) -> Optional[RepoRef]:
        if not _HEX_RE.match(query):
            return None
        if not MIN_SHORT_HASH_LENGTH <= len(query) < self.git.hash_length():
            return None
        candidates = self.git.disambiguate(query.lower())[:MAX_CANDIDATES]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.debug("Short hash '%s' matches %d objects", query, len(candidates))
            raise AmbiguousRefError(query, candidates)
        sha = self.git.rev_parse_commit(candidates[0])
        if sha is None:
            raise RefNotFoundError(query, f"object {candidates[0]} is not a commit")
        return RepoRef(RefKind.COMMIT, sha, query)

    def _lookup_relative(self, query: str) -> Optional[RepoRef]:
        base, suffix = _split_relative(query)
        if base is None:
            return None
        base_sha = self._resolve_relative_base(query, base)
        if base_sha is None:
            return None
        if suffix and not _SUFFIX_RE.match(suffix):
            raise InvalidRelativeExpressionError(query, f"cannot parse suffix '{suffix}'")
        if not suffix:
            return RepoRef(RefKind.COMMIT, base_sha, query)
        sha = self.git.rev_parse_commit(base_sha + suffix)
        if sha is None:
            raise InvalidRelativeExpressionError(query, "walks past the beginning of history")
        return RepoRef(RefKind.COMMIT, sha, query)

    def _resolve_relative_base(self, query: str, base: str) -> Optional[str]:
        if base in _HEAD_ALIASES:
            sha = self.git.rev_parse_commit("HEAD")
            if sha is None:
                raise InvalidRelativeExpressionError(query, "HEAD does not point at a commit yet")
            return sha
        ref = self._lookup_branch(base) or self._lookup_tag(base)
        return ref.resolved_id if ref is not None else None


def _split_relative(query: str):
    """Split ``query`` into ``(base, suffix)`` at the first ``~`` or ``^``.

    Returns ``(None, "")`` when the query is neither a HEAD alias nor
    carries a suffix.
    """
    if query in _HEAD_ALIASES:
        return query, ""
    match = re.search(r"[~^]", query)
    if match is None or match.start() == 0:
        return None, ""
    return query[: match.start()], query[match.start():]
