"""
Artifact types produced by the pipeline.

The AI provider returns free text; :mod:`gitsum.llm.result_validator`
turns that text into one of the typed artifacts below.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ArtifactKind(Enum):
    """The kind of text the provider is asked to write."""

    DIFF_SUMMARY = "diff summary"
    COMMIT_MESSAGE = "commit message"
    PR_CONTENT = "pull request description"


@dataclass(frozen=True)
class DiffSummary:
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class CommitMessage:
    """A commit message split into subject and (possibly empty) body."""

    subject: str
    body: str = ""

    @property
    def text(self) -> str:
        if not self.body:
            return self.subject
        return f"{self.subject}\n\n{self.body}"

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class PrContent:
    """Title and body for a pull request."""

    title: str
    body: str

    def __str__(self) -> str:
        return f"{self.title}\n\n{self.body}"
