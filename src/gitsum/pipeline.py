"""
The summarization pipeline.

:class:`Pipeline` composes reference resolution, diff extraction,
prompt building, the provider chain and result validation into the
user-facing operations. Every invocation walks the same stages::

    resolving refs -> extracting diff -> building prompt
        -> calling providers -> validating -> done | failed

A failure is terminal. The error raised by the failing component is
re-raised unchanged except that its ``stage`` attribute is set. The
only retry is a single re-prompt with stricter instructions after the
validator rejected the first answer.

The pipeline keeps no per-run state on ``self``; concurrent runs only
share the read-only collaborators.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from gitsum.diff.diff_extractor import DiffExtractor
from gitsum.diff.diff_model import DiffSet
from gitsum.errors import (
    GitSumError,
    NoChangesError,
    RefNotFoundError,
    RepositoryCorruptError,
    ValidationError,
)
from gitsum.llm import prompt_builder, result_validator
from gitsum.llm.artifacts import ArtifactKind, CommitMessage, DiffSummary, PrContent
from gitsum.llm.prompt_builder import SummaryRequest
from gitsum.llm.provider_chain import ProviderChain, ProviderConfig
from gitsum.llm.result_validator import Artifact
from gitsum.vcs.git_client import GitClient, GitError
from gitsum.vcs.ref_resolver import STAGED_LITERAL, WORKING_TREE_LITERAL, RefKind, RefResolver, RepoRef


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


class PipelineStage(Enum):
    RESOLVING_REFS = "resolving refs"
    EXTRACTING_DIFF = "extracting diff"
    BUILDING_PROMPT = "building prompt"
    CALLING_PROVIDERS = "calling providers"
    VALIDATING = "validating"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class HistoryEntry:
    """Summary of a single commit produced by :meth:`Pipeline.summarize_history`."""

    commit: str
    subject: str
    summary: DiffSummary


class Pipeline:
    """Run summarization operations against one repository.

    Parameters
    ----------
    git_client : GitClient
        Client for the repository to read from.
    providers : ProviderConfig
        Immutable provider configuration.
    chain : ProviderChain, optional
        Provider chain to use; a default chain is created when omitted.
    max_diff_bytes : int, optional
        Byte budget for hunk text before the diff is truncated.
    """

    def __init__(
        self,
        git_client: GitClient,
        providers: ProviderConfig,
        chain: Optional[ProviderChain] = None,
        max_diff_bytes: Optional[int] = None,
    ) -> None:
        self.git = git_client
        self.providers = providers
        self.chain = chain or ProviderChain()
        self.resolver = RefResolver(git_client)
        if max_diff_bytes is None:
            self.extractor = DiffExtractor(git_client)
        else:
            self.extractor = DiffExtractor(git_client, max_bytes=max_diff_bytes)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def summarize_diff(
        self,
        from_query: str,
        to_query: str = WORKING_TREE_LITERAL,
        focus_hint: Optional[str] = None,
    ) -> DiffSummary:
        """Summarize the changes from ``from_query`` to ``to_query``."""
        return self.run(from_query, to_query, ArtifactKind.DIFF_SUMMARY, focus_hint)

    def summarize_staged(self, focus_hint: Optional[str] = None) -> DiffSummary:
        """Summarize the changes staged on top of HEAD."""
        return self.run("HEAD", STAGED_LITERAL, ArtifactKind.DIFF_SUMMARY, focus_hint)

    def generate_commit_message(self, focus_hint: Optional[str] = None) -> CommitMessage:
        """Write a commit message for the staged changes."""
        return self.run("HEAD", STAGED_LITERAL, ArtifactKind.COMMIT_MESSAGE, focus_hint)

    def generate_pr_content(
        self,
        base: str,
        head: str = "HEAD",
        focus_hint: Optional[str] = None,
    ) -> PrContent:
        """Write a pull request title and body for ``base..head``."""
        return self.run(base, head, ArtifactKind.PR_CONTENT, focus_hint)

    def summarize_history(
        self,
        reference: str = "HEAD",
        count: int = 5,
        focus_hint: Optional[str] = None,
    ) -> List[HistoryEntry]:
        """Summarize the last ``count`` commits reachable from ``reference``.

        Each commit is compared with its first parent; a root commit is
        compared with the empty tree.
        """
        stage = PipelineStage.RESOLVING_REFS
        try:
            start = self.resolver.resolve(reference)
            if not start.is_commit:
                raise RefNotFoundError(reference, "history can only start from a commit")
            commits = self.git.rev_list(start.resolved_id, count)
            parents = [self.git.rev_parse_commit(f"{sha}^") or self.git.empty_tree_id() for sha in commits]
            subjects = [self.git.commit_subject(sha) for sha in commits]
        except GitError as exc:
            raise self._failed(RepositoryCorruptError(f"Could not read history of {reference}: {exc}"), stage)
        except GitSumError as exc:
            raise self._failed(exc, stage)

        entries: List[HistoryEntry] = []
        for sha, parent, subject in zip(commits, parents, subjects):
            from_ref = RepoRef(RefKind.COMMIT, parent, f"{sha[:7]}^")
            to_ref = RepoRef(RefKind.COMMIT, sha, sha[:7])
            summary = self._run_resolved(from_ref, to_ref, ArtifactKind.DIFF_SUMMARY, focus_hint)
            entries.append(HistoryEntry(commit=sha, subject=subject, summary=summary))
        return entries

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def run(
        self,
        from_query: str,
        to_query: str,
        artifact_kind: ArtifactKind,
        focus_hint: Optional[str] = None,
    ) -> Artifact:
        """Resolve both queries and produce a validated artifact.

        Raises
        ------
        GitSumError
            The typed error of the stage that failed, with ``stage`` set.
        """
        stage = PipelineStage.RESOLVING_REFS
        try:
            from_ref = self.resolver.resolve(from_query, allow_staged=True)
            to_ref = self.resolver.resolve(to_query, allow_staged=True)
        except GitSumError as exc:
            raise self._failed(exc, stage)
        logger.info("Comparing %s with %s", from_ref, to_ref)
        return self._run_resolved(from_ref, to_ref, artifact_kind, focus_hint)

    def _run_resolved(
        self,
        from_ref: RepoRef,
        to_ref: RepoRef,
        artifact_kind: ArtifactKind,
        focus_hint: Optional[str],
    ) -> Artifact:
        stage = PipelineStage.EXTRACTING_DIFF
        try:
            diff = self.extractor.extract(from_ref, to_ref)
            if diff.is_empty:
                raise NoChangesError(f"No changes between {from_ref} and {to_ref}")
        except GitSumError as exc:
            raise self._failed(exc, stage)
        logger.info("Diff: %s%s", diff.stat_line(), " (truncated)" if diff.truncated else "")

        try:
            return self._generate(diff, artifact_kind, focus_hint, strict=False)
        except ValidationError as exc:
            logger.warning("Response rejected (%s); retrying once with stricter instructions", exc)
        return self._generate(diff, artifact_kind, focus_hint, strict=True)

    def _generate(
        self,
        diff: DiffSet,
        artifact_kind: ArtifactKind,
        focus_hint: Optional[str],
        strict: bool,
    ) -> Artifact:
        stage = PipelineStage.BUILDING_PROMPT
        try:
            request = SummaryRequest(diff=diff, artifact_kind=artifact_kind, focus_hint=focus_hint, strict=strict)
            payload = prompt_builder.build(request)
            stage = PipelineStage.CALLING_PROVIDERS
            result = self.chain.send(payload, self.providers)
            stage = PipelineStage.VALIDATING
            artifact = result_validator.validate(result)
        except GitSumError as exc:
            raise self._failed(exc, stage)
        logger.debug("%s from %s: %s", artifact_kind.value, result.provider_used, PipelineStage.DONE.value)
        return artifact

    @staticmethod
    def _failed(exc: GitSumError, stage: PipelineStage) -> GitSumError:
        exc.stage = stage
        logger.debug("Pipeline %s while %s: %s", PipelineStage.FAILED.value, stage.value, exc)
        return exc
