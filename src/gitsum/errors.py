"""
Error taxonomy for gitsum.

Each pipeline component raises its own family of errors. All of them
derive from :class:`GitSumError` so that the CLI can render any of them
with ``str(exc)`` and map the family to an exit code. The pipeline sets
the ``stage`` attribute on the way out to record where the run failed;
it never replaces the error with a different one.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class GitSumError(Exception):
    """Base class for every error surfaced by the pipeline."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.stage = None


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------
class ResolutionError(GitSumError):
    """Raised when a reference string cannot be turned into a RepoRef."""

    def __init__(self, query: str, message: str) -> None:
        super().__init__(message)
        self.query = query


class RefNotFoundError(ResolutionError):
    """No branch, tag, hash or relative expression matches the query."""

    def __init__(self, query: str, detail: Optional[str] = None) -> None:
        message = f"Could not resolve git reference '{query}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(query, message)


class AmbiguousRefError(ResolutionError):
    """A short hash matches more than one object."""

    def __init__(self, query: str, candidates: Sequence[str]) -> None:
        self.candidates: List[str] = sorted(candidates)
        listing = ", ".join(self.candidates)
        super().__init__(
            query,
            f"Short hash '{query}' is ambiguous; it matches {len(self.candidates)} objects: {listing}",
        )


class InvalidRelativeExpressionError(ResolutionError):
    """A relative expression such as ``HEAD~3`` is malformed or walks out of history."""

    def __init__(self, query: str, detail: str) -> None:
        super().__init__(query, f"Invalid relative expression '{query}': {detail}")


# ---------------------------------------------------------------------------
# Diff extraction
# ---------------------------------------------------------------------------
class ExtractionError(GitSumError):
    """Raised when a diff cannot be produced for two references."""


class RefNotComparableError(ExtractionError):
    """Both sides of the comparison are the same endpoint."""


class RepositoryCorruptError(ExtractionError):
    """Git failed or produced output that could not be parsed."""


class NoChangesError(ExtractionError):
    """The two endpoints differ but the diff between them is empty."""


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------
class ChainExhaustedError(GitSumError):
    """Every configured provider failed.

    ``attempts`` holds one :class:`gitsum.llm.provider_chain.ProviderAttempt`
    per provider that was tried, in the order they were tried.
    """

    def __init__(self, attempts: Sequence[object], message: Optional[str] = None) -> None:
        self.attempts = list(attempts)
        if message is None:
            if not self.attempts:
                message = (
                    "No AI provider available. Set ANTHROPIC_API_KEY or "
                    "OPENAI_API_KEY in the environment or a .env file."
                )
            else:
                lines = ["All AI providers failed:"]
                for attempt in self.attempts:
                    lines.append(f"  - {attempt}")
                message = "\n".join(lines)
        super().__init__(message)


class ChainCancelledError(ChainExhaustedError):
    """The chain was cancelled before a provider succeeded."""

    def __init__(self, attempts: Sequence[object]) -> None:
        super().__init__(attempts, "AI request cancelled")


# ---------------------------------------------------------------------------
# Result validation
# ---------------------------------------------------------------------------
class ValidationError(GitSumError):
    """The provider response does not have the shape the artifact requires."""

    def __init__(self, artifact_kind: str, message: str) -> None:
        super().__init__(f"Invalid {artifact_kind} from AI provider: {message}")
        self.artifact_kind = artifact_kind


class EmptyBodyError(ValidationError):
    """The response contains no usable text."""


class SubjectTooLongError(ValidationError):
    """The commit subject line exceeds the maximum length."""

    def __init__(self, artifact_kind: str, subject: str, limit: int) -> None:
        super().__init__(
            artifact_kind,
            f"subject line is {len(subject)} characters long (limit {limit}): {subject!r}",
        )
        self.subject = subject
        self.limit = limit


class MissingSectionError(ValidationError):
    """A required section (e.g. the PR title or body) could not be extracted."""

    def __init__(self, artifact_kind: str, section: str) -> None:
        super().__init__(artifact_kind, f"missing or empty {section} section")
        self.section = section
