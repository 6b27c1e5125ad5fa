import unittest
from unittest.mock import Mock, patch

import requests

from commit_weaver.llm.claude_client import API_VERSION, ClaudeClient, LLMError, LLMHTTPError


def ok_response(payload):
    response = Mock()
    response.status_code = 200
    response.json.return_value = payload
    return response


class TestClaudeClient(unittest.TestCase):
    def setUp(self) -> None:
        self.client = ClaudeClient(api_key="key", model="test-model", request_timeout=5, max_tokens=100)

    def test_generate_sends_request(self) -> None:
        response = ok_response({"content": [{"type": "text", "text": "feat: add x"}]})
        with patch("requests.post", return_value=response) as post:
            result = self.client.generate("sys", "prompt")
        self.assertEqual(result, "feat: add x")
        _, kwargs = post.call_args
        self.assertEqual(kwargs["headers"]["x-api-key"], "key")
        self.assertEqual(kwargs["headers"]["anthropic-version"], API_VERSION)
        self.assertEqual(kwargs["json"]["model"], "test-model")
        self.assertEqual(kwargs["json"]["max_tokens"], 100)
        self.assertEqual(kwargs["json"]["system"], "sys")
        self.assertEqual(kwargs["json"]["messages"], [{"role": "user", "content": "prompt"}])
        self.assertEqual(kwargs["timeout"], 5)

    def test_text_blocks_are_joined(self) -> None:
        response = ok_response({
            "content": [
                {"type": "text", "text": "feat: "},
                {"type": "tool_use", "id": "x"},
                {"type": "text", "text": "add y"},
            ]
        })
        with patch("requests.post", return_value=response):
            self.assertEqual(self.client.generate("", "p"), "feat: add y")

    def test_empty_system_is_omitted(self) -> None:
        response = ok_response({"content": [{"type": "text", "text": "ok"}]})
        with patch("requests.post", return_value=response) as post:
            self.client.generate("", "p")
        self.assertNotIn("system", post.call_args[1]["json"])

    def test_http_error_carries_status(self) -> None:
        response = Mock(status_code=429, text="rate limited")
        with patch("requests.post", return_value=response):
            with self.assertRaises(LLMHTTPError) as ctx:
                self.client.generate("s", "p")
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("rate limited", str(ctx.exception))

    def test_transport_error(self) -> None:
        with patch("requests.post", side_effect=requests.ConnectionError("down")):
            with self.assertRaises(LLMError) as ctx:
                self.client.generate("s", "p")
        self.assertNotIsInstance(ctx.exception, LLMHTTPError)

    def test_invalid_json(self) -> None:
        response = Mock(status_code=200)
        response.json.side_effect = ValueError("bad")
        with patch("requests.post", return_value=response):
            with self.assertRaises(LLMError):
                self.client.generate("s", "p")

    def test_unexpected_structure(self) -> None:
        with patch("requests.post", return_value=ok_response({"completion": "x"})):
            with self.assertRaises(LLMError):
                self.client.generate("s", "p")

    def test_empty_reply(self) -> None:
        with patch("requests.post", return_value=ok_response({"content": [{"type": "text", "text": "  "}]})):
            with self.assertRaises(LLMError):
                self.client.generate("s", "p")


if __name__ == "__main__":
    unittest.main()
