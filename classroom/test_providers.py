from django.test import SimpleTestCase, override_settings
from unittest.mock import MagicMock, patch
from types import SimpleNamespace

import httpx
import openai
import requests

from .llm_providers import (
    DeepSeekProvider,
    GeminiProvider,
    OpenAIProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderRegistry,
    ProviderUnavailableError,
    QwenProvider,
    error_from_status,
)


def gemini_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = ""
    return response


def chat_completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class GeminiProviderTests(SimpleTestCase):
    def setUp(self):
        self.provider = GeminiProvider(api_key="gemini-key", model="gemini-2.0-flash")

    def test_payload_maps_roles_and_system_instruction(self):
        payload = GeminiProvider.build_payload([
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
        ])
        self.assertEqual(payload["contents"], [
            {"role": "user", "parts": [{"text": "Hi"}]},
            {"role": "model", "parts": [{"text": "Hello"}]},
        ])
        self.assertEqual(payload["systemInstruction"], {"parts": [{"text": "Be brief."}]})

    def test_payload_without_system_message_has_no_instruction(self):
        payload = GeminiProvider.build_payload([{"role": "user", "content": "Hi"}])
        self.assertNotIn("systemInstruction", payload)

    @patch('classroom.llm_providers.requests.post')
    def test_returns_first_candidate_text(self, mock_post):
        mock_post.return_value = gemini_response(payload={
            "candidates": [{"content": {"parts": [{"text": "A story idea"}]}}],
        })

        reply = self.provider.get_chat_completion([{"role": "user", "content": "Idea?"}])

        self.assertEqual(reply, "A story idea")
        args, kwargs = mock_post.call_args
        self.assertTrue(args[0].endswith("/models/gemini-2.0-flash:generateContent"))
        self.assertEqual(kwargs["params"], {"key": "gemini-key"})
        self.assertEqual(kwargs["json"]["contents"][0]["role"], "user")

    @patch('classroom.llm_providers.requests.post')
    def test_explicit_model_overrides_default(self, mock_post):
        mock_post.return_value = gemini_response(payload={
            "candidates": [{"content": {"parts": [{"text": "ok"}]}}],
        })
        self.provider.get_chat_completion([{"role": "user", "content": "x"}], model="gemini-1.5-pro")
        self.assertIn("/models/gemini-1.5-pro:generateContent", mock_post.call_args.args[0])

    @patch('classroom.llm_providers.requests.post')
    def test_rate_limit_status_maps_to_rate_limit_error(self, mock_post):
        mock_post.return_value = gemini_response(429, {"error": {"message": "Quota exceeded"}})

        with self.assertRaises(ProviderRateLimitError) as ctx:
            self.provider.get_chat_completion([{"role": "user", "content": "x"}])
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertIn("Quota exceeded", str(ctx.exception))

    @patch('classroom.llm_providers.requests.post')
    def test_network_failure_is_unavailable(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("connection refused")
        with self.assertRaises(ProviderUnavailableError):
            self.provider.get_chat_completion([{"role": "user", "content": "x"}])

    @patch('classroom.llm_providers.requests.post')
    def test_missing_candidates_is_provider_error(self, mock_post):
        mock_post.return_value = gemini_response(payload={"candidates": []})
        with self.assertRaises(ProviderError) as ctx:
            self.provider.get_chat_completion([{"role": "user", "content": "x"}])
        self.assertEqual(ctx.exception.status_code, 502)

    @patch('classroom.llm_providers.requests.post')
    def test_non_json_success_body_is_provider_error(self, mock_post):
        response = gemini_response()
        response.json.side_effect = requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0)
        response.text = "<html>Bad gateway</html>"
        mock_post.return_value = response

        with self.assertRaises(ProviderError) as ctx:
            self.provider.get_chat_completion([{"role": "user", "content": "x"}])
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertEqual(ctx.exception.provider, "gemini")
        self.assertIn("invalid JSON", str(ctx.exception))

    @patch('classroom.llm_providers.requests.post')
    def test_missing_key_fails_before_any_request(self, mock_post):
        with self.assertRaises(ProviderAuthenticationError):
            GeminiProvider(api_key=None).get_chat_completion([{"role": "user", "content": "x"}])
        mock_post.assert_not_called()


class OpenAICompatibleProviderTests(SimpleTestCase):
    @patch('classroom.llm_providers.openai.OpenAI')
    def test_deepseek_uses_its_base_url_without_sdk_retries(self, mock_openai):
        client = mock_openai.return_value
        client.chat.completions.create.return_value = chat_completion("deep reply")

        reply = DeepSeekProvider(api_key="ds-key").get_chat_completion([{"role": "user", "content": "Hi"}])

        self.assertEqual(reply, "deep reply")
        kwargs = mock_openai.call_args.kwargs
        self.assertEqual(kwargs["base_url"], "https://api.deepseek.com/v1")
        self.assertEqual(kwargs["max_retries"], 0)
        self.assertEqual(client.chat.completions.create.call_args.kwargs["model"], "deepseek-chat")

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_qwen_targets_dashscope_compatible_mode(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = chat_completion("qwen reply")
        QwenProvider(api_key="qw-key").get_chat_completion([{"role": "user", "content": "Hi"}], model="qwen-plus")
        self.assertEqual(mock_openai.call_args.kwargs["base_url"], "https://dashscope.aliyuncs.com/compatible-mode/v1")
        self.assertEqual(mock_openai.return_value.chat.completions.create.call_args.kwargs["model"], "qwen-plus")

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_null_content_becomes_empty_string(self, mock_openai):
        mock_openai.return_value.chat.completions.create.return_value = chat_completion(None)
        self.assertEqual(OpenAIProvider(api_key="sk-test").get_chat_completion([{"role": "user", "content": "Hi"}]), "")

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_status_error_keeps_vendor_status(self, mock_openai):
        request = httpx.Request("POST", "https://api.deepseek.com/v1/chat/completions")
        mock_openai.return_value.chat.completions.create.side_effect = openai.RateLimitError(
            "Rate limit reached", response=httpx.Response(429, request=request), body=None,
        )

        with self.assertRaises(ProviderRateLimitError) as ctx:
            DeepSeekProvider(api_key="ds-key").get_chat_completion([{"role": "user", "content": "Hi"}])
        self.assertEqual(ctx.exception.provider, "deepseek")
        self.assertIn("DeepSeek API error", str(ctx.exception))

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_connection_error_is_unavailable(self, mock_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai.return_value.chat.completions.create.side_effect = openai.APIConnectionError(request=request)
        with self.assertRaises(ProviderUnavailableError):
            OpenAIProvider(api_key="sk-test").get_chat_completion([{"role": "user", "content": "Hi"}])

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_unparseable_sdk_response_is_provider_error(self, mock_openai):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_openai.return_value.chat.completions.create.side_effect = openai.APIResponseValidationError(
            response=httpx.Response(200, request=request), body=None,
        )

        with self.assertRaises(ProviderError) as ctx:
            OpenAIProvider(api_key="sk-test").get_chat_completion([{"role": "user", "content": "Hi"}])
        self.assertEqual(ctx.exception.provider, "openai")
        self.assertIn("OpenAI API error", str(ctx.exception))

    @patch('classroom.llm_providers.openai.OpenAI')
    def test_missing_key_never_builds_client(self, mock_openai):
        with self.assertRaises(ProviderAuthenticationError):
            OpenAIProvider(api_key="").get_chat_completion([{"role": "user", "content": "Hi"}])
        mock_openai.assert_not_called()


class ErrorMappingTests(SimpleTestCase):
    def test_status_codes_map_to_subclasses(self):
        self.assertIsInstance(error_from_status(429, "slow down"), ProviderRateLimitError)
        self.assertIsInstance(error_from_status(401, "bad key"), ProviderAuthenticationError)
        self.assertIsInstance(error_from_status(503, "down"), ProviderUnavailableError)
        other = error_from_status(418, "teapot")
        self.assertEqual(type(other), ProviderError)
        self.assertEqual(other.status_code, 418)


class ProviderRegistryTests(SimpleTestCase):
    @override_settings(GEMINI_API_KEY="g-key", OPENAI_API_KEY="", DASHSCOPE_API_KEY="  ", DEEPSEEK_API_KEY="d-key")
    def test_only_configured_providers_are_registered(self):
        registry = ProviderRegistry.from_settings()
        self.assertEqual(sorted(registry.available()), ["deepseek", "gemini"])
        self.assertIn("gemini", registry)
        self.assertNotIn("openai", registry)

    def test_unknown_provider_raises_not_configured(self):
        with self.assertRaises(ProviderNotConfiguredError) as ctx:
            ProviderRegistry().get("mistral")
        self.assertEqual(str(ctx.exception), "Provider mistral not found")
