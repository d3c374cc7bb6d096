import threading
import unittest

from gitsum.errors import ChainCancelledError, ChainExhaustedError
from gitsum.llm.artifacts import ArtifactKind
from gitsum.llm.prompt_builder import ProviderPayload
from gitsum.llm.provider_chain import (
    ANTHROPIC,
    OPENAI,
    AttemptOutcome,
    ProviderChain,
    ProviderConfig,
    ProviderEntry,
    default_client_factory,
)
from gitsum.llm.provider_clients import (
    AnthropicClient,
    FatalProviderError,
    OpenAIClient,
    TransientProviderError,
)


PAYLOAD = ProviderPayload(system="s", user="u", artifact_kind=ArtifactKind.DIFF_SUMMARY)


def entry(name, credential=True):
    return ProviderEntry(
        name=name,
        credential_present=credential,
        model_id=f"{name}-model",
        api_key="key" if credential else None,
    )


class ScriptedClient:
    """Returns a fixed answer or raises a fixed error."""

    def __init__(self, name, outcome, calls):
        self.name = name
        self.outcome = outcome
        self.calls = calls

    def generate(self, payload):
        self.calls.append(self.name)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def scripted_factory(outcomes, calls):
    def factory(provider_entry):
        return ScriptedClient(provider_entry.name, outcomes[provider_entry.name], calls)

    return factory


class TestProviderConfig(unittest.TestCase):
    def test_entries_are_put_in_preference_order(self) -> None:
        config = ProviderConfig.from_entries([entry(OPENAI), entry(ANTHROPIC)])
        self.assertEqual([e.name for e in config], [ANTHROPIC, OPENAI])

    def test_available_lists_credentialed_providers(self) -> None:
        config = ProviderConfig.from_entries([entry(ANTHROPIC, credential=False), entry(OPENAI)])
        self.assertEqual(config.available, [OPENAI])

    def test_only(self) -> None:
        config = ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)])
        self.assertEqual([e.name for e in config.only(OPENAI)], [OPENAI])
        with self.assertRaises(ValueError):
            config.only("other")

    def test_api_key_not_in_repr(self) -> None:
        secret = ProviderEntry(ANTHROPIC, True, "m", api_key="sk-secret")
        self.assertNotIn("sk-secret", repr(secret))


class TestProviderChain(unittest.TestCase):
    def test_first_success_wins(self) -> None:
        calls = []
        chain = ProviderChain(scripted_factory({ANTHROPIC: "from anthropic", OPENAI: "from openai"}, calls))
        result = chain.send(PAYLOAD, ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)]))
        self.assertEqual(result.provider_used, ANTHROPIC)
        self.assertEqual(result.raw_text, "from anthropic")
        self.assertIs(result.artifact_kind, ArtifactKind.DIFF_SUMMARY)
        self.assertEqual(calls, [ANTHROPIC])

    def test_only_openai_credential_skips_anthropic(self) -> None:
        calls = []
        chain = ProviderChain(scripted_factory({ANTHROPIC: "unused", OPENAI: "summary"}, calls))
        config = ProviderConfig.from_entries([entry(ANTHROPIC, credential=False), entry(OPENAI)])
        result = chain.send(PAYLOAD, config)
        self.assertEqual(result.provider_used, OPENAI)
        self.assertEqual(calls, [OPENAI])
        self.assertEqual([a.provider for a in result.attempts], [OPENAI])

    def test_falls_back_after_transient_failure(self) -> None:
        calls = []
        outcomes = {ANTHROPIC: TransientProviderError(ANTHROPIC, "HTTP 529: overloaded", 529), OPENAI: "ok"}
        result = ProviderChain(scripted_factory(outcomes, calls)).send(
            PAYLOAD, ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)])
        )
        self.assertEqual(result.provider_used, OPENAI)
        self.assertEqual(
            [a.outcome for a in result.attempts],
            [AttemptOutcome.TRANSIENT_FAILURE, AttemptOutcome.SUCCESS],
        )

    def test_falls_back_after_fatal_failure(self) -> None:
        calls = []
        outcomes = {ANTHROPIC: FatalProviderError(ANTHROPIC, "authentication failed (HTTP 401)", 401), OPENAI: "ok"}
        result = ProviderChain(scripted_factory(outcomes, calls)).send(
            PAYLOAD, ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)])
        )
        self.assertEqual(result.attempts[0].outcome, AttemptOutcome.FATAL_FAILURE)
        self.assertEqual(calls, [ANTHROPIC, OPENAI])

    def test_all_timeouts_exhaust_chain_in_order(self) -> None:
        calls = []
        outcomes = {
            ANTHROPIC: TransientProviderError(ANTHROPIC, "request timed out after 60s"),
            OPENAI: TransientProviderError(OPENAI, "request timed out after 60s"),
        }
        chain = ProviderChain(scripted_factory(outcomes, calls))
        with self.assertRaises(ChainExhaustedError) as ctx:
            chain.send(PAYLOAD, ProviderConfig.from_entries([entry(OPENAI), entry(ANTHROPIC)]))
        attempts = ctx.exception.attempts
        self.assertEqual([a.provider for a in attempts], [ANTHROPIC, OPENAI])
        self.assertTrue(all(a.outcome is AttemptOutcome.TRANSIENT_FAILURE for a in attempts))
        self.assertIn("anthropic: transient failure (request timed out after 60s)", str(ctx.exception))
        self.assertIn("openai: transient failure", str(ctx.exception))

    def test_no_credentials_at_all(self) -> None:
        calls = []
        chain = ProviderChain(scripted_factory({}, calls))
        config = ProviderConfig.from_entries([entry(ANTHROPIC, False), entry(OPENAI, False)])
        with self.assertRaises(ChainExhaustedError) as ctx:
            chain.send(PAYLOAD, config)
        self.assertEqual(ctx.exception.attempts, [])
        self.assertIn("No AI provider available", str(ctx.exception))
        self.assertEqual(calls, [])

    def test_cancel_before_next_attempt(self) -> None:
        calls = []
        cancel = threading.Event()

        class CancellingClient(ScriptedClient):
            def generate(self, payload):
                cancel.set()
                return super().generate(payload)

        def factory(provider_entry):
            outcome = TransientProviderError(provider_entry.name, "HTTP 500: boom", 500)
            return CancellingClient(provider_entry.name, outcome, calls)

        chain = ProviderChain(factory, cancel_event=cancel)
        with self.assertRaises(ChainCancelledError) as ctx:
            chain.send(PAYLOAD, ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)]))
        self.assertEqual(calls, [ANTHROPIC])
        self.assertEqual(len(ctx.exception.attempts), 1)

    def test_cancel_during_last_attempt(self) -> None:
        calls = []
        cancel = threading.Event()

        class CancellingClient(ScriptedClient):
            def generate(self, payload):
                cancel.set()
                return super().generate(payload)

        def factory(provider_entry):
            return CancellingClient(provider_entry.name, FatalProviderError(provider_entry.name, "HTTP 401"), calls)

        chain = ProviderChain(factory, cancel_event=cancel)
        with self.assertRaises(ChainCancelledError) as ctx:
            chain.send(PAYLOAD, ProviderConfig.from_entries([entry(OPENAI)]))
        self.assertEqual(calls, [OPENAI])
        self.assertEqual([a.outcome for a in ctx.exception.attempts], [AttemptOutcome.FATAL_FAILURE])

    def test_keyboard_interrupt_is_not_swallowed(self) -> None:
        calls = []
        outcomes = {ANTHROPIC: KeyboardInterrupt(), OPENAI: "never"}
        chain = ProviderChain(scripted_factory(outcomes, calls))
        with self.assertRaises(KeyboardInterrupt):
            chain.send(PAYLOAD, ProviderConfig.from_entries([entry(ANTHROPIC), entry(OPENAI)]))
        self.assertEqual(calls, [ANTHROPIC])


class TestDefaultClientFactory(unittest.TestCase):
    def test_creates_matching_clients(self) -> None:
        anthropic = default_client_factory(entry(ANTHROPIC))
        self.assertIsInstance(anthropic, AnthropicClient)
        self.assertEqual(anthropic.model, "anthropic-model")
        openai = default_client_factory(
            ProviderEntry(OPENAI, True, "gpt", api_key="k", base_url="http://proxy/v1", timeout=5)
        )
        self.assertIsInstance(openai, OpenAIClient)
        self.assertEqual(openai.base_url, "http://proxy/v1")
        self.assertEqual(openai.request_timeout, 5)

    def test_unknown_provider(self) -> None:
        with self.assertRaises(ValueError):
            default_client_factory(entry("other"))


if __name__ == "__main__":
    unittest.main()
