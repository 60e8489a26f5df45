"""
Tests for the text generation client.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Add the project root to the Python path
sys.path.append(str(Path(__file__).parent.parent))

from doc_ingest.exceptions import DependencyUnavailable
from doc_ingest.llm_client import TextGenerationClient, create_text_client, is_transient_error, require_client


def make_client(model_name: str = "gemini-1.5-flash") -> TextGenerationClient:
    with patch.object(TextGenerationClient, "_init_client"):
        client = TextGenerationClient(model_name=model_name, api_key="test-key")
    client.model = MagicMock() if client.is_gemini else model_name
    client.client = MagicMock()
    return client


class TestTextGenerationClient(unittest.TestCase):
    """Tests for the TextGenerationClient class."""

    def test_missing_api_key(self):
        with patch("doc_ingest.llm_client.config.GEMINI_API_KEY", None):
            with self.assertRaises(ValueError):
                TextGenerationClient(model_name="gemini-1.5-flash")

    def test_gemini_generate(self):
        client = make_client()
        client.model.generate_content.return_value = MagicMock(text="  A title  ")

        self.assertEqual(client.generate("prompt", temperature=0.0, max_tokens=30), "A title")
        config = client.model.generate_content.call_args.kwargs["generation_config"]
        self.assertEqual(config["max_output_tokens"], 30)
        self.assertEqual(config["top_p"], 0.1)

    def test_transient_errors_retried(self):
        client = make_client()
        client.model.generate_content.side_effect = [ConnectionError("reset"), MagicMock(text="ok")]

        with patch("tenacity.nap.time.sleep"):
            self.assertEqual(client.generate("prompt"), "ok")
        self.assertEqual(client.model.generate_content.call_count, 2)

    def test_client_errors_not_retried(self):
        client = make_client()
        client.model.generate_content.side_effect = PermissionError("invalid API key")

        with patch("tenacity.nap.time.sleep"):
            with self.assertRaises(PermissionError):
                client.generate("prompt")
        self.assertEqual(client.model.generate_content.call_count, 1)

    def test_openai_generate(self):
        client = make_client("gpt-4o-mini")
        message = MagicMock()
        message.content = " Summary. "
        client.client.chat.completions.create.return_value.choices = [MagicMock(message=message)]

        self.assertEqual(client.generate("prompt"), "Summary.")
        kwargs = client.client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-4o-mini")

    def test_is_transient_error(self):
        self.assertTrue(is_transient_error(TimeoutError()))
        self.assertFalse(is_transient_error(ValueError()))


class TestClientFactory(unittest.TestCase):

    def test_create_without_key_returns_none(self):
        with patch("doc_ingest.llm_client.config.GEMINI_API_KEY", None):
            self.assertIsNone(create_text_client("gemini-1.5-flash"))

    def test_require_client(self):
        with self.assertRaises(DependencyUnavailable):
            require_client(None)
        client = MagicMock()
        self.assertIs(require_client(client), client)


if __name__ == "__main__":
    unittest.main()
