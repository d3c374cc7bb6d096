"""
Validation of provider output.

:func:`validate` is the only way an :class:`AiResult` becomes a typed
artifact. Responses are lightly cleaned first (surrounding whitespace
and a single wrapping code fence are removed); anything beyond that is
a rejection, not a repair.
"""

from __future__ import annotations

import re
from typing import Union

from gitsum.errors import EmptyBodyError, MissingSectionError, SubjectTooLongError
from gitsum.llm.artifacts import ArtifactKind, CommitMessage, DiffSummary, PrContent
from gitsum.llm.prompt_builder import MAX_SUBJECT_LENGTH, PR_BODY_MARKER, PR_TITLE_MARKER
from gitsum.llm.provider_chain import AiResult


Artifact = Union[DiffSummary, CommitMessage, PrContent]

_FENCE_RE = re.compile(r"^```[\w-]*\n(?P<inner>.*?)\n?```$", re.DOTALL)
_TITLE_RE = re.compile(rf"^\s*\**{re.escape(PR_TITLE_MARKER[:-1])}\**\s*:\**[ \t]*(?P<title>.*)$", re.IGNORECASE | re.MULTILINE)
_BODY_RE = re.compile(rf"^\s*\**{re.escape(PR_BODY_MARKER[:-1])}\**\s*:\**[ \t]*", re.IGNORECASE | re.MULTILINE)


def clean_response(text: str) -> str:
    """Strip whitespace and one code fence wrapping the whole response."""
    text = (text or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group("inner").strip()
    return text


def validate(result: AiResult) -> Artifact:
    """Turn ``result`` into the artifact its ``artifact_kind`` declares.

    Raises
    ------
    EmptyBodyError
        The response has no usable text.
    SubjectTooLongError
        A commit subject exceeds :data:`MAX_SUBJECT_LENGTH` characters.
    MissingSectionError
        A PR response lacks its title or body section.
    """
    text = clean_response(result.raw_text)
    kind = result.artifact_kind
    if kind is ArtifactKind.DIFF_SUMMARY:
        return validate_summary(text)
    if kind is ArtifactKind.COMMIT_MESSAGE:
        return validate_commit_message(text)
    return validate_pr_content(text)


def validate_summary(text: str) -> DiffSummary:
    if not text:
        raise EmptyBodyError(ArtifactKind.DIFF_SUMMARY.value, "response is empty")
    return DiffSummary(text)


def validate_commit_message(text: str) -> CommitMessage:
    kind = ArtifactKind.COMMIT_MESSAGE.value
    if not text:
        raise EmptyBodyError(kind, "response is empty")
    subject, _, body = text.partition("\n")
    subject = subject.strip().rstrip(".").rstrip()
    if not subject:
        raise EmptyBodyError(kind, "subject line is empty")
    if len(subject) > MAX_SUBJECT_LENGTH:
        raise SubjectTooLongError(kind, subject, MAX_SUBJECT_LENGTH)
    return CommitMessage(subject=subject, body=body.strip())


def validate_pr_content(text: str) -> PrContent:
    """Split a ``TITLE:`` / ``BODY:`` response into a :class:`PrContent`.

    Markers are matched case-insensitively at the start of a line and
    may be wrapped in Markdown bold (``**Title:**``).
    """
    kind = ArtifactKind.PR_CONTENT.value
    if not text:
        raise EmptyBodyError(kind, "response is empty")
    title_match = _TITLE_RE.search(text)
    if title_match is None or not title_match.group("title").strip(" *"):
        raise MissingSectionError(kind, "title")
    body_match = _BODY_RE.search(text, title_match.end())
    if body_match is None:
        raise MissingSectionError(kind, "body")
    body = text[body_match.end():].strip()
    if not body:
        raise MissingSectionError(kind, "body")
    return PrContent(title=title_match.group("title").strip(" *"), body=body)
