"""
Ordered provider fallback.

:class:`ProviderConfig` is the single, immutable description of which
providers may be used, in which order and with which credentials. It is
built once at start-up by :mod:`gitsum.config.loader` and passed
explicitly to :meth:`ProviderChain.send`.

:class:`ProviderChain` walks the configuration in order. Providers
without a credential are skipped without counting as an attempt. Every
attempted provider ends in exactly one :class:`AttemptOutcome`; a
failure of either kind moves on to the next provider, and the first
success ends the walk. When nothing succeeds the caller gets a
:class:`ChainExhaustedError` listing every attempt in order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from gitsum.errors import ChainCancelledError, ChainExhaustedError
from gitsum.llm.artifacts import ArtifactKind
from gitsum.llm.prompt_builder import ProviderPayload
from gitsum.llm.provider_clients import (
    ANTHROPIC_BASE_URL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_REQUEST_TIMEOUT,
    OPENAI_BASE_URL,
    AnthropicClient,
    FatalProviderError,
    OpenAIClient,
    TransientProviderError,
)


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


ANTHROPIC = "anthropic"
OPENAI = "openai"
# Preference order; Anthropic is always tried before OpenAI.
PROVIDER_ORDER = (ANTHROPIC, OPENAI)


@dataclass(frozen=True)
class ProviderEntry:
    """One configured provider.

    ``api_key`` is an opaque handle; it is excluded from ``repr`` so it
    never shows up in logs or tracebacks.
    """

    name: str
    credential_present: bool
    model_id: str
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_tokens: int = DEFAULT_MAX_TOKENS


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable, ordered provider list."""

    entries: Tuple[ProviderEntry, ...] = ()

    @classmethod
    def from_entries(cls, entries: Iterable[ProviderEntry]) -> "ProviderConfig":
        """Build a configuration, putting known providers in preference order."""

        def rank(entry: ProviderEntry) -> int:
            if entry.name in PROVIDER_ORDER:
                return PROVIDER_ORDER.index(entry.name)
            return len(PROVIDER_ORDER)

        return cls(tuple(sorted(entries, key=rank)))

    def __iter__(self) -> Iterator[ProviderEntry]:
        return iter(self.entries)

    @property
    def available(self) -> List[str]:
        """Names of the providers that have a credential."""
        return [entry.name for entry in self.entries if entry.credential_present]

    def only(self, name: str) -> "ProviderConfig":
        """Restrict the configuration to the provider called ``name``.

        Raises
        ------
        ValueError
            If no provider of that name is configured.
        """
        selected = tuple(entry for entry in self.entries if entry.name == name)
        if not selected:
            raise ValueError(f"Unknown AI provider: {name}")
        return ProviderConfig(selected)


class AttemptOutcome(Enum):
    """How one provider attempt ended."""

    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient failure"
    FATAL_FAILURE = "fatal failure"


@dataclass(frozen=True)
class ProviderAttempt:
    provider: str
    outcome: AttemptOutcome
    reason: str = ""

    def __str__(self) -> str:
        if self.reason:
            return f"{self.provider}: {self.outcome.value} ({self.reason})"
        return f"{self.provider}: {self.outcome.value}"


@dataclass(frozen=True)
class AiResult:
    """Unvalidated provider output."""

    provider_used: str
    raw_text: str
    artifact_kind: ArtifactKind
    attempts: Tuple[ProviderAttempt, ...] = ()


def default_client_factory(entry: ProviderEntry):
    """Create the HTTP client for ``entry``."""
    if entry.name == ANTHROPIC:
        return AnthropicClient(
            api_key=entry.api_key or "",
            model=entry.model_id,
            base_url=entry.base_url or ANTHROPIC_BASE_URL,
            request_timeout=entry.timeout,
            max_tokens=entry.max_tokens,
        )
    if entry.name == OPENAI:
        return OpenAIClient(
            api_key=entry.api_key or "",
            model=entry.model_id,
            base_url=entry.base_url or OPENAI_BASE_URL,
            request_timeout=entry.timeout,
            max_tokens=entry.max_tokens,
        )
    raise ValueError(f"Unknown AI provider: {entry.name}")


class ProviderChain:
    """Send a payload to the first provider that answers.

    Parameters
    ----------
    client_factory : callable, optional
        Maps a :class:`ProviderEntry` to an object with a
        ``generate(payload) -> str`` method.
    cancel_event : threading.Event, optional
        When set, the chain stops before the next attempt, or after the
        last one failed, and raises :class:`ChainCancelledError`. A ``KeyboardInterrupt`` during a
        request is never caught and aborts the chain as well.
    """

    def __init__(
        self,
        client_factory: Callable[[ProviderEntry], object] = default_client_factory,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.client_factory = client_factory
        self.cancel_event = cancel_event

    def _check_cancelled(self, attempts: List[ProviderAttempt]) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info("AI request cancelled")
            raise ChainCancelledError(attempts)

    def send(self, payload: ProviderPayload, config: ProviderConfig) -> AiResult:
        """Send ``payload`` through the providers of ``config`` in order.

        Raises
        ------
        ChainExhaustedError
            If every provider with a credential failed, or none has one.
        ChainCancelledError
            If the cancel event was set before a provider succeeded.
        """
        attempts: List[ProviderAttempt] = []
        for entry in config:
            if not entry.credential_present:
                logger.debug("Skipping %s: no credential configured", entry.name)
                continue
            self._check_cancelled(attempts)

            client = self.client_factory(entry)
            logger.info("Requesting %s from %s (%s)", payload.artifact_kind.value, entry.name, entry.model_id)
            try:
                text = client.generate(payload)
            except TransientProviderError as exc:
                attempts.append(ProviderAttempt(entry.name, AttemptOutcome.TRANSIENT_FAILURE, str(exc)))
                logger.warning("%s failed (%s); trying next provider", entry.name, exc)
                continue
            except FatalProviderError as exc:
                attempts.append(ProviderAttempt(entry.name, AttemptOutcome.FATAL_FAILURE, str(exc)))
                logger.warning("%s failed (%s); trying next provider", entry.name, exc)
                continue

            attempts.append(ProviderAttempt(entry.name, AttemptOutcome.SUCCESS))
            return AiResult(
                provider_used=entry.name,
                raw_text=text,
                artifact_kind=payload.artifact_kind,
                attempts=tuple(attempts),
            )

        # the event may have been set while the last provider was failing
        self._check_cancelled(attempts)
        logger.error("No AI provider succeeded after %d attempt(s)", len(attempts))
        raise ChainExhaustedError(attempts)
