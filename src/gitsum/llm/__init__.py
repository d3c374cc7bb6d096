"""
Language model integration for gitsum.

This package builds prompts from a diff, sends them through the ordered
provider chain (Anthropic, then OpenAI) and validates the responses into
typed artifacts.
"""

from .artifacts import ArtifactKind, CommitMessage, DiffSummary, PrContent  # noqa: F401
from .provider_chain import AiResult, ProviderChain, ProviderConfig, ProviderEntry  # noqa: F401
from .provider_clients import AnthropicClient, OpenAIClient, ProviderError  # noqa: F401
