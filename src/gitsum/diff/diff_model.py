"""
Data models for extracted diffs.

A :class:`DiffSet` is the provider-agnostic form of a ``git diff``: an
ordered tuple of :class:`FileChange` entries in git's own path order.
Both are frozen so that a diff can be shared between the prompt
builder and the caller without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple


class ChangeKind(Enum):
    """How a file changed between two endpoints."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class DiffStats:
    """Line counts for one file."""

    added_lines: int = 0
    removed_lines: int = 0


@dataclass(frozen=True)
class FileChange:
    """Representation of a single file change.

    Attributes
    ----------
    path : str
        Path of the file on the new side (the old path for deletions).
    change_kind : ChangeKind
        Added, modified, deleted or renamed.
    hunk_text : str
        The ``@@`` hunks of the file, possibly cut short when the diff
        was truncated. Empty for binary files.
    stats : DiffStats
        Exact added/removed line counts, even when ``hunk_text`` was cut.
    old_path : Optional[str]
        Previous path for renames.
    binary : bool
        True when git reported the file as binary.
    truncated : bool
        True when ``hunk_text`` is shorter than the real diff.
    """

    path: str
    change_kind: ChangeKind
    hunk_text: str = ""
    stats: DiffStats = field(default_factory=DiffStats)
    old_path: Optional[str] = None
    binary: bool = False
    truncated: bool = False


@dataclass(frozen=True)
class DiffSet:
    """Ordered collection of file changes between two endpoints."""

    files: Tuple[FileChange, ...] = ()
    truncated: bool = False

    def __iter__(self) -> Iterator[FileChange]:
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def paths(self) -> List[str]:
        return [change.path for change in self.files]

    @property
    def added_lines(self) -> int:
        return sum(change.stats.added_lines for change in self.files)

    @property
    def removed_lines(self) -> int:
        return sum(change.stats.removed_lines for change in self.files)

    def stat_line(self) -> str:
        """One-line ``git diff --stat`` style summary."""
        count = len(self.files)
        return (
            f"{count} file{'s' if count != 1 else ''} changed, "
            f"{self.added_lines} insertions(+), {self.removed_lines} deletions(-)"
        )
