"""
Prompt construction.

:func:`build` turns a :class:`SummaryRequest` into a provider-neutral
:class:`ProviderPayload`. It is a pure function: the same request
always produces the same payload, and nothing is read from the
environment or the repository.

The templates only *ask* the model for a shape. Whether the answer has
that shape is checked afterwards by :mod:`gitsum.llm.result_validator`.
"""

from __future__ import annotations

from dataclasses import dataclass
from textwrap import dedent
from typing import List, Optional

from gitsum.diff.diff_model import DiffSet, FileChange
from gitsum.llm.artifacts import ArtifactKind


MAX_SUBJECT_LENGTH = 72
PR_TITLE_MARKER = "TITLE:"
PR_BODY_MARKER = "BODY:"

_MAX_TOKENS = {
    ArtifactKind.DIFF_SUMMARY: 1024,
    ArtifactKind.COMMIT_MESSAGE: 512,
    ArtifactKind.PR_CONTENT: 2048,
}


@dataclass(frozen=True)
class SummaryRequest:
    """Everything needed to ask for one artifact.

    ``strict`` selects the stricter wording used when a first answer
    failed validation.
    """

    diff: DiffSet
    artifact_kind: ArtifactKind
    focus_hint: Optional[str] = None
    strict: bool = False


@dataclass(frozen=True)
class ProviderPayload:
    """Provider-neutral request: a system instruction and a user message."""

    system: str
    user: str
    artifact_kind: ArtifactKind
    max_tokens: int = 1024


SUMMARY_INSTRUCTIONS = dedent(
    """
    You are a helpful assistant that summarizes git diffs.
    Focus on the key changes and their implications. Be concise but informative.
    Describe what changed and why it matters; do not restate the diff line by line.
    """
).strip()

COMMIT_INSTRUCTIONS = dedent(
    f"""
    You are a helpful assistant that writes git commit messages.
    Follow these rules strictly:
    1. Line 1 is a short summary of the change:
       - imperative mood ("Add", not "Added" or "Adds")
       - at most {MAX_SUBJECT_LENGTH} characters
       - no trailing period
    2. Line 2 is blank.
    3. The remaining lines explain what changed and why, wrapped at 72 characters,
       specific to the changes shown.
    Output only the commit message, without preamble or code fences.
    """
).strip()

PR_INSTRUCTIONS = dedent(
    f"""
    You are a helpful assistant that writes pull request descriptions.
    Answer in exactly this format:

    {PR_TITLE_MARKER} <one-line title in imperative mood>
    {PR_BODY_MARKER}
    <markdown description>

    The description starts with a high-level summary, then explains the changes,
    their purpose and any important implementation details.
    Do not write anything before the {PR_TITLE_MARKER} line.
    """
).strip()

_STRICT_REMINDERS = {
    ArtifactKind.DIFF_SUMMARY: "Your previous answer was empty. Answer with a non-empty summary.",
    ArtifactKind.COMMIT_MESSAGE: (
        f"Your previous answer was rejected. The first line MUST be non-empty, at most "
        f"{MAX_SUBJECT_LENGTH} characters and must not end with a period. Output nothing "
        "but the commit message."
    ),
    ArtifactKind.PR_CONTENT: (
        f"Your previous answer was rejected. It MUST start with a '{PR_TITLE_MARKER}' line "
        f"followed by a '{PR_BODY_MARKER}' line and a non-empty description."
    ),
}

_INSTRUCTIONS = {
    ArtifactKind.DIFF_SUMMARY: SUMMARY_INSTRUCTIONS,
    ArtifactKind.COMMIT_MESSAGE: COMMIT_INSTRUCTIONS,
    ArtifactKind.PR_CONTENT: PR_INSTRUCTIONS,
}

_ASKS = {
    ArtifactKind.DIFF_SUMMARY: "Please summarize this git diff:",
    ArtifactKind.COMMIT_MESSAGE: "Write a commit message for these changes:",
    ArtifactKind.PR_CONTENT: "Write a pull request title and description for these changes:",
}


def format_file(change: FileChange) -> str:
    """Render one file change as a header line followed by its hunks."""
    header = f"File: {change.path} ({change.change_kind.value}, +{change.stats.added_lines}/-{change.stats.removed_lines})"
    if change.old_path:
        header += f" renamed from {change.old_path}"
    if change.binary:
        return f"{header}\n(binary file, no textual diff)"
    body = change.hunk_text.rstrip("\n")
    if change.truncated:
        body = f"{body}\n[... diff truncated ...]" if body else "[diff omitted, size limit reached]"
    return f"{header}\n{body}" if body else header


def format_diff(diff: DiffSet) -> str:
    """Render a whole diff for inclusion in a prompt."""
    parts: List[str] = [format_file(change) for change in diff]
    text = "\n\n".join(parts)
    if diff.truncated:
        text += (
            "\n\nNote: the diff was truncated because of its size. "
            f"Totals for all files: {diff.stat_line()}."
        )
    return text


def build(request: SummaryRequest) -> ProviderPayload:
    """Build the provider payload for ``request``."""
    system = _INSTRUCTIONS[request.artifact_kind]
    if request.focus_hint and request.focus_hint.strip():
        system = f"{system}\nAdditional instruction: {request.focus_hint}"
    if request.strict:
        system = f"{system}\n{_STRICT_REMINDERS[request.artifact_kind]}"

    user = f"{_ASKS[request.artifact_kind]}\n```\n{format_diff(request.diff)}\n```"
    return ProviderPayload(
        system=system,
        user=user,
        artifact_kind=request.artifact_kind,
        max_tokens=_MAX_TOKENS[request.artifact_kind],
    )
