"""
Diff extraction.

:class:`DiffExtractor` runs ``git diff`` between two resolved
endpoints and parses the patch into a :class:`DiffSet`. The patch is
produced with a pinned set of options so that the user's git
configuration cannot change the ordering or the format, which keeps
repeated extractions of the same endpoints identical.

Large diffs are not rejected. Once the hunk text exceeds the byte
budget, the remaining hunks are cut at a line boundary and flagged,
while the per-file line counts stay exact.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Optional

from gitsum.diff.diff_model import ChangeKind, DiffSet, DiffStats, FileChange
from gitsum.errors import RefNotComparableError, RepositoryCorruptError
from gitsum.vcs.git_client import GitClient, GitError
from gitsum.vcs.ref_resolver import RefKind, RepoRef


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


DEFAULT_MAX_DIFF_BYTES = 60_000

_HEADER_PREFIX = "diff --git "
_HEADER_RE = re.compile(r"^diff --git a/(?P<old>.+) b/(?P<new>.+)$")
# git quotes names containing '"', '\' or control characters even with
# core.quotePath=false
_ESCAPES = {
    "a": 0x07, "b": 0x08, "t": 0x09, "n": 0x0A, "v": 0x0B, "f": 0x0C, "r": 0x0D,
    '"': 0x22, "\\": 0x5C,
}


class DiffExtractor:
    """Produce normalized diffs between two :class:`RepoRef` endpoints."""

    def __init__(self, git_client: GitClient, max_bytes: Optional[int] = DEFAULT_MAX_DIFF_BYTES) -> None:
        self.git = git_client
        self.max_bytes = max_bytes

    def extract(self, from_ref: RepoRef, to_ref: RepoRef) -> DiffSet:
        """Return the changes needed to go from ``from_ref`` to ``to_ref``.

        Raises
        ------
        RefNotComparableError
            Both endpoints are the same commit, or the same pseudo-ref.
        RepositoryCorruptError
            Git failed or its output could not be parsed.
        """
        args = diff_arguments(from_ref, to_ref)
        try:
            patch = self.git.diff(args)
        except GitError as exc:
            raise RepositoryCorruptError(f"git diff failed for {from_ref} -> {to_ref}: {exc}") from exc
        try:
            files = parse_patch(patch)
        except ValueError as exc:
            raise RepositoryCorruptError(f"Could not parse git diff output: {exc}") from exc

        diff = DiffSet(tuple(files))
        logger.debug("Extracted %d file change(s): %s", len(diff), diff.stat_line())
        return truncate_diff(diff, self.max_bytes)


def diff_arguments(from_ref: RepoRef, to_ref: RepoRef) -> List[str]:
    """Translate a pair of endpoints into ``git diff`` arguments.

    The index and the working tree are compared directly; a commit on
    the right-hand side of a pseudo-ref is handled with ``-R``.
    """
    if from_ref.kind is to_ref.kind and (not from_ref.is_commit or from_ref.resolved_id == to_ref.resolved_id):
        raise RefNotComparableError(f"Cannot compare {from_ref} with itself")

    commit, staged, worktree = RefKind.COMMIT, RefKind.STAGED_INDEX, RefKind.WORKING_TREE
    pair = (from_ref.kind, to_ref.kind)
    if pair == (commit, commit):
        args = [from_ref.resolved_id, to_ref.resolved_id]
    elif pair == (commit, staged):
        args = ["--cached", from_ref.resolved_id]
    elif pair == (commit, worktree):
        args = [from_ref.resolved_id]
    elif pair == (staged, worktree):
        args = []
    elif pair == (staged, commit):
        args = ["-R", "--cached", to_ref.resolved_id]
    elif pair == (worktree, commit):
        args = ["-R", to_ref.resolved_id]
    else:
        args = ["-R"]
    return args + ["--"]


# ---------------------------------------------------------------------------
# Patch parsing
# ---------------------------------------------------------------------------
class _FileBuilder:
    """Accumulates the lines of one ``diff --git`` section."""

    def __init__(self, header: str) -> None:
        self.path, self.old_path = _paths_from_header(header)
        self.kind = ChangeKind.MODIFIED
        self.binary = False
        self.in_hunks = False
        self.hunk_lines: List[str] = []
        self.added = 0
        self.removed = 0

    def feed(self, line: str) -> None:
        if self.in_hunks or line.startswith("@@"):
            self._feed_hunk(line)
            return
        text = line.rstrip("\n")
        if text.startswith("new file mode"):
            self.kind = ChangeKind.ADDED
        elif text.startswith("deleted file mode"):
            self.kind = ChangeKind.DELETED
        elif text.startswith("rename from "):
            self.kind = ChangeKind.RENAMED
            self.old_path = _unquote(text[len("rename from "):])
        elif text.startswith("rename to "):
            self.path = _unquote(text[len("rename to "):])
        elif text.startswith("Binary files ") or text == "GIT binary patch":
            self.binary = True
        elif text.startswith("--- "):
            name = _file_line_name(text[len("--- "):], "a/")
            if name is not None:
                self.old_path = name
        elif text.startswith("+++ "):
            name = _file_line_name(text[len("+++ "):], "b/")
            if name is not None:
                self.path = name

    def _feed_hunk(self, line: str) -> None:
        self.in_hunks = True
        if line.startswith("+"):
            self.added += 1
        elif line.startswith("-"):
            self.removed += 1
        self.hunk_lines.append(line)

    def build(self) -> FileChange:
        path = self.path
        if self.kind is ChangeKind.DELETED and self.old_path:
            path = self.old_path
        if not path:
            raise ValueError("file section without a path")
        return FileChange(
            path=path,
            change_kind=self.kind,
            hunk_text="" if self.binary else "".join(self.hunk_lines),
            stats=DiffStats(self.added, self.removed),
            old_path=self.old_path if self.kind is ChangeKind.RENAMED else None,
            binary=self.binary,
        )


def _read_quoted(text: str, start: int = 0):
    """Decode the C-style quoted name opening at ``text[start]``.

    Returns the decoded name and the index just past the closing quote.
    """
    if not text.startswith('"', start):
        raise ValueError(f"expected a quoted name: {text!r}")
    data = bytearray()
    index = start + 1
    while index < len(text):
        char = text[index]
        if char == '"':
            return data.decode("utf-8", errors="replace"), index + 1
        if char != "\\":
            data.extend(char.encode("utf-8"))
            index += 1
            continue
        escape = text[index + 1:index + 2]
        if escape in _ESCAPES:
            data.append(_ESCAPES[escape])
            index += 2
        elif re.match(r"[0-7]{3}", text[index + 1:index + 4]):
            data.append(int(text[index + 1:index + 4], 8))
            index += 4
        else:
            raise ValueError(f"bad escape in quoted name: {text!r}")
    raise ValueError(f"unterminated quoted name: {text!r}")


def _unquote(name: str) -> str:
    if not name.startswith('"'):
        return name
    value, end = _read_quoted(name)
    if end != len(name):
        raise ValueError(f"trailing text after quoted name: {name!r}")
    return value


def _file_line_name(name: str, prefix: str) -> Optional[str]:
    # git appends a tab to ---/+++ names that contain spaces
    name = _unquote(name.rstrip("\t"))
    if name == "/dev/null":
        return None
    if not name.startswith(prefix):
        raise ValueError(f"unexpected file name line: {name!r}")
    return name[len(prefix):]


def _strip_prefix(name: str, prefix: str, header: str) -> str:
    if not name.startswith(prefix):
        raise ValueError(f"malformed diff header: {header!r}")
    return name[len(prefix):]


def _paths_from_header(header: str):
    rest = header[len(_HEADER_PREFIX):]
    if rest.startswith('"'):
        old, end = _read_quoted(rest)
        if not rest.startswith(" ", end):
            raise ValueError(f"malformed diff header: {header!r}")
        new = _unquote(rest[end + 1:])
    elif rest.endswith('"') and ' "b/' in rest:
        split = rest.rfind(' "b/')
        old, new = rest[:split], _unquote(rest[split + 1:])
    else:
        # "a/P b/P" is the common case and is unambiguous even when P has spaces.
        if rest.startswith("a/") and (len(rest) - 5) % 2 == 0:
            half = (len(rest) - 5) // 2
            old, new = rest[2:2 + half], rest[2 + half:]
            if new == f" b/{old}":
                return old, old
        match = _HEADER_RE.match(header)
        if match is None:
            raise ValueError(f"malformed diff header: {header!r}")
        return match.group("new"), match.group("old")
    return _strip_prefix(new, "b/", header), _strip_prefix(old, "a/", header)


def parse_patch(patch: str) -> List[FileChange]:
    """Parse unified ``git diff`` output into file changes, in output order.

    Raises
    ------
    ValueError
        If the text does not look like ``git diff`` output.
    """
    changes: List[FileChange] = []
    current: Optional[_FileBuilder] = None
    for line in patch.splitlines(keepends=True):
        if line.startswith(_HEADER_PREFIX):
            if current is not None:
                changes.append(current.build())
            current = _FileBuilder(line.rstrip("\n"))
            continue
        if current is None:
            if line.strip():
                raise ValueError(f"unexpected line before the first file header: {line.rstrip()!r}")
            continue
        current.feed(line)
    if current is not None:
        changes.append(current.build())
    return changes


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------
def truncate_diff(diff: DiffSet, max_bytes: Optional[int]) -> DiffSet:
    """Cap the total hunk text of ``diff`` at ``max_bytes`` UTF-8 bytes.

    Files are kept in order until the budget runs out; the file that
    crosses the budget is cut at the last complete line and every later
    file loses its hunk text. Stats are never touched.
    """
    if max_bytes is None:
        return diff
    total = sum(len(change.hunk_text.encode("utf-8")) for change in diff.files)
    if total <= max_bytes:
        return diff

    logger.info("Diff is %d bytes, truncating to %d bytes", total, max_bytes)
    remaining = max_bytes
    files: List[FileChange] = []
    for change in diff.files:
        data = change.hunk_text.encode("utf-8")
        if len(data) <= remaining:
            files.append(change)
            remaining -= len(data)
            continue
        kept = data[:remaining].decode("utf-8", errors="ignore")
        kept = kept[: kept.rfind("\n") + 1]
        remaining = 0
        files.append(replace(change, hunk_text=kept, truncated=True))
    return DiffSet(tuple(files), truncated=True)
