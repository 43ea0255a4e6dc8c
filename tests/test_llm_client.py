from __future__ import annotations

import io
import json
import urllib.error
import unittest
from unittest.mock import MagicMock, patch

from startup_radar.config import LangSmithConfig, OpenAIConfig
from startup_radar.errors import CompletionError, PromptRegistryError
from startup_radar.llm_client import OpenAIChatClient
from startup_radar.prompt_registry import LangSmithRegistry


def fake_response(payload: object) -> MagicMock:
    response = MagicMock()
    response.__enter__.return_value = response
    response.status = 200
    response.read.return_value = json.dumps(payload).encode("utf-8")
    return response


class OpenAIChatClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = OpenAIChatClient(
            OpenAIConfig("sk-test", "gpt-4.1-nano", "https://api.openai.com/v1", 30),
            max_retries=1,
        )

    @patch("urllib.request.urlopen")
    def test_json_mode_request_uses_fixed_parameters(self, urlopen_mock) -> None:
        urlopen_mock.return_value = fake_response(
            {"choices": [{"message": {"role": "assistant", "content": ' {"summary": "S"} '}}]}
        )

        text = self.client.complete("PROMPT")

        self.assertEqual(text, '{"summary": "S"}')
        request = urlopen_mock.call_args.args[0]
        self.assertEqual(request.full_url, "https://api.openai.com/v1/chat/completions")
        self.assertEqual(request.get_header("Authorization"), "Bearer sk-test")
        body = json.loads(request.data.decode("utf-8"))
        self.assertEqual(body["temperature"], 0.1)
        self.assertEqual(body["max_tokens"], 500)
        self.assertEqual(body["response_format"], {"type": "json_object"})
        self.assertEqual(body["messages"], [{"role": "user", "content": "PROMPT"}])

    @patch("urllib.request.urlopen")
    def test_raw_mode_omits_response_format(self, urlopen_mock) -> None:
        urlopen_mock.return_value = fake_response({"choices": [{"message": {"content": "hi"}}]})

        self.client.complete("PROMPT", json_mode=False)

        body = json.loads(urlopen_mock.call_args.args[0].data.decode("utf-8"))
        self.assertNotIn("response_format", body)

    @patch("urllib.request.urlopen")
    def test_provider_error_becomes_completion_error(self, urlopen_mock) -> None:
        urlopen_mock.side_effect = urllib.error.HTTPError(
            "https://api.openai.com/v1/chat/completions",
            401,
            "Unauthorized",
            hdrs=None,
            fp=io.BytesIO(b'{"error": {"message": "Incorrect API key"}}'),
        )

        with self.assertRaises(CompletionError) as ctx:
            self.client.complete("PROMPT")
        self.assertIn("Incorrect API key", str(ctx.exception))

    @patch("urllib.request.urlopen")
    def test_empty_choices_raise(self, urlopen_mock) -> None:
        urlopen_mock.return_value = fake_response({"choices": []})
        with self.assertRaises(CompletionError):
            self.client.complete("PROMPT")


class LangSmithRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = LangSmithRegistry(
            LangSmithConfig("ls-key", "https://api.smith.langchain.com"), max_retries=1
        )

    @patch("urllib.request.urlopen")
    def test_pull_latest_converts_manifest(self, urlopen_mock) -> None:
        urlopen_mock.return_value = fake_response(
            {
                "commit_hash": "abc",
                "manifest": {
                    "lc": 1,
                    "type": "constructor",
                    "id": ["langchain", "prompts", "prompt", "PromptTemplate"],
                    "kwargs": {
                        "input_variables": ["content"],
                        "template": "Analyze {content}",
                        "template_format": "f-string",
                    },
                },
            }
        )

        template = self.registry.pull_latest("startup-analysis-2")

        request = urlopen_mock.call_args.args[0]
        self.assertEqual(
            request.full_url,
            "https://api.smith.langchain.com/commits/-/startup-analysis-2/latest",
        )
        self.assertEqual(request.get_header("X-api-key"), "ls-key")
        self.assertEqual(template.version, "latest")
        self.assertTrue(template.is_active)
        self.assertEqual(template.input_variables, ["content"])
        self.assertEqual(template.source, "hub")

    @patch("urllib.request.urlopen")
    def test_list_prompts_normalizes_repos(self, urlopen_mock) -> None:
        urlopen_mock.return_value = fake_response(
            {
                "repos": [
                    {
                        "id": "r1",
                        "repo_handle": "scoring",
                        "owner": "team",
                        "updated_at": "2026-09-01T00:00:00Z",
                        "metadata": {"is_active": True, "version": "v2"},
                    }
                ],
                "total": 1,
            }
        )

        templates = self.registry.list_prompts()

        self.assertIn("sort_field=updated_at", urlopen_mock.call_args.args[0].full_url)
        self.assertEqual(len(templates), 1)
        self.assertEqual(templates[0].name, "team/scoring")
        self.assertEqual(templates[0].body, "")

    @patch("urllib.request.urlopen")
    def test_http_failure_becomes_registry_error(self, urlopen_mock) -> None:
        urlopen_mock.side_effect = urllib.error.HTTPError(
            "https://api.smith.langchain.com/commits/-/startup-analysis-2/latest",
            404,
            "Not Found",
            hdrs=None,
            fp=io.BytesIO(b""),
        )
        with self.assertRaises(PromptRegistryError):
            self.registry.pull_latest("startup-analysis-2")


if __name__ == "__main__":
    unittest.main()
