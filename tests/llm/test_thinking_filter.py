"""Tests for filtering reasoning blocks from provider responses."""

import unittest
from unittest.mock import Mock, patch

from gitsum.llm.artifacts import ArtifactKind
from gitsum.llm.prompt_builder import ProviderPayload
from gitsum.llm.provider_clients import OpenAIClient, strip_thinking_tags


class TestThinkingFilter(unittest.TestCase):
    """Tests for removing thinking tags from responses."""

    def test_filter_simple_thinking_tags(self):
        """Test that <think> tags are removed from a chat completion."""
        client = OpenAIClient(api_key="k", model="test-model")

        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.json.return_value = {
            "choices": [
                {"message": {"content": "<think>Let me analyze this code...</think>Add new feature\n\nThis adds a new feature."}}
            ]
        }

        payload = ProviderPayload(system="s", user="u", artifact_kind=ArtifactKind.COMMIT_MESSAGE)
        with patch("requests.post", return_value=mock_response):
            result = client.generate(payload)

        self.assertNotIn("<think>", result)
        self.assertNotIn("Let me analyze", result)
        self.assertEqual(result, "Add new feature\n\nThis adds a new feature.")

    def test_filter_multiline_and_case_insensitive(self):
        text = "<THINKING>First, I need to understand\nwhat changed.</THINKING>\n\nFix bug in parser"
        self.assertEqual(strip_thinking_tags(text), "Fix bug in parser")

    def test_filter_multiple_tag_kinds(self):
        text = "<reasoning>a</reasoning>Answer<thought>b</thought> here"
        self.assertEqual(strip_thinking_tags(text), "Answer here")

    def test_no_tags_is_unchanged(self):
        self.assertEqual(strip_thinking_tags("  plain answer \n"), "plain answer")


if __name__ == "__main__":
    unittest.main()
