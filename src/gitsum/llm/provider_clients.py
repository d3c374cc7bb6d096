"""
HTTP clients for the supported AI providers.

Each client sends exactly one request per :meth:`generate` call using
``requests`` and either returns the generated text or raises a
:class:`ProviderError`. Errors are split into two families so that the
provider chain can record why an attempt failed:

* :class:`TransientProviderError` for timeouts, connection problems,
  rate limiting and server-side (5xx) failures;
* :class:`FatalProviderError` for authentication failures, rejected
  requests and responses that cannot be parsed.

Neither family is retried here. Streaming is not supported.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from gitsum.llm.prompt_builder import ProviderPayload


logger = logging.getLogger(__name__)
# Attach a null handler to avoid errors when the root logger is missing a
# stream. Messages still propagate to the root logger if configured.
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"
OPENAI_BASE_URL = "https://api.openai.com/v1"

DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.3

# Only this much of an error body ends up in messages.
_ERROR_BODY_LIMIT = 300


class ProviderError(Exception):
    """Raised when a request to an AI provider fails."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Timeout, connection failure, rate limit or 5xx response."""


class FatalProviderError(ProviderError):
    """Authentication failure, rejected request or malformed response."""


def strip_thinking_tags(text: str) -> str:
    """Remove reasoning blocks such as ``<think>...</think>`` from a response.

    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    for tag in ("think", "thinking", "thought", "reasoning"):
        text = re.sub(rf"<{tag}>.*?</{tag}>", "", text, flags=re.DOTALL | re.IGNORECASE)
    return text.strip()


@dataclass
class _HttpProviderClient:
    """Shared request/response handling for the concrete clients."""

    api_key: str = field(repr=False)
    model: str = ""
    base_url: str = ""
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_tokens: int = DEFAULT_MAX_TOKENS

    name = "provider"

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("Sending request to %s at %s (model %s)", self.name, url, self.model)
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.request_timeout)
        except requests.Timeout as exc:
            raise TransientProviderError(
                self.name, f"request timed out after {self.request_timeout:g}s"
            ) from exc
        except requests.ConnectionError as exc:
            raise TransientProviderError(self.name, f"connection failed: {exc}") from exc
        except requests.RequestException as exc:
            raise FatalProviderError(self.name, f"request failed: {exc}") from exc

        status = response.status_code
        if status != 200:
            body = (response.text or "")[:_ERROR_BODY_LIMIT]
            logger.error("%s returned status %s: %s", self.name, status, body)
            if status == 429 or status >= 500:
                raise TransientProviderError(self.name, f"HTTP {status}: {body}", status)
            if status in (401, 403):
                raise FatalProviderError(self.name, f"authentication failed (HTTP {status})", status)
            raise FatalProviderError(self.name, f"request rejected (HTTP {status}): {body}", status)
        try:
            data = response.json()
        except ValueError as exc:
            raise FatalProviderError(self.name, "response is not valid JSON") from exc
        if not isinstance(data, dict):
            raise FatalProviderError(self.name, "unexpected response structure")
        return data


@dataclass
class AnthropicClient(_HttpProviderClient):
    """Client for the Anthropic Messages API."""

    base_url: str = ANTHROPIC_BASE_URL

    name = "anthropic"

    def generate(self, payload: ProviderPayload) -> str:
        """Generate a completion for ``payload``.

        Raises
        ------
        ProviderError
            If the request fails or the response has no text content.
        """
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": min(payload.max_tokens, self.max_tokens),
            "system": payload.system,
            "messages": [{"role": "user", "content": payload.user}],
            "temperature": DEFAULT_TEMPERATURE,
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }
        data = self._post(f"{self.base_url.rstrip('/')}/v1/messages", headers, body)
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise FatalProviderError(self.name, "unexpected response structure")
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        return strip_thinking_tags(text)


@dataclass
class OpenAIClient(_HttpProviderClient):
    """Client for the OpenAI chat completions API."""

    base_url: str = OPENAI_BASE_URL

    name = "openai"

    def generate(self, payload: ProviderPayload) -> str:
        """Generate a completion for ``payload``.

        Raises
        ------
        ProviderError
            If the request fails or the response has no message content.
        """
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": payload.system},
                {"role": "user", "content": payload.user},
            ],
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": min(payload.max_tokens, self.max_tokens),
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = self._post(f"{self.base_url.rstrip('/')}/chat/completions", headers, body)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise FatalProviderError(self.name, "unexpected response structure") from exc
        if not isinstance(content, str):
            raise FatalProviderError(self.name, "response message has no text content")
        return strip_thinking_tags(content)
