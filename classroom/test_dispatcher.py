import threading

from django.test import SimpleTestCase
from unittest.mock import MagicMock

from .dispatcher import dispatch
from .llm_providers import ProviderRateLimitError, ProviderRegistry


def fake_provider(reply=None, error=None):
    provider = MagicMock()
    if error is not None:
        provider.get_chat_completion.side_effect = error
    else:
        provider.get_chat_completion.return_value = reply
    return provider


class DispatchTests(SimpleTestCase):
    messages = [{"role": "user", "content": "Pitch me a world."}]

    def test_empty_request_returns_empty_list(self):
        self.assertEqual(dispatch([], self.messages, registry=ProviderRegistry()), [])

    def test_results_follow_request_order(self):
        registry = ProviderRegistry({
            "gemini": fake_provider("from gemini"),
            "deepseek": fake_provider("from deepseek"),
            "qwen": fake_provider("from qwen"),
        })

        results = dispatch(["qwen", "gemini", "deepseek"], self.messages, registry=registry)

        self.assertEqual([r.provider_id for r in results], ["qwen", "gemini", "deepseek"])
        self.assertEqual([r.response for r in results], ["from qwen", "from gemini", "from deepseek"])
        self.assertTrue(all(r.ok for r in results))

    def test_one_failure_does_not_affect_the_others(self):
        registry = ProviderRegistry({
            "gemini": fake_provider("A"),
            "deepseek": fake_provider(error=ProviderRateLimitError("rate limited", provider="deepseek")),
        })

        results = dispatch(["gemini", "deepseek"], self.messages, registry=registry)

        self.assertEqual(results[0].to_dict(), {"providerId": "gemini", "response": "A"})
        self.assertEqual(
            results[1].to_dict(),
            {"providerId": "deepseek", "response": "", "error": "rate limited"},
        )

    def test_unexpected_exception_is_captured(self):
        registry = ProviderRegistry({"openai": fake_provider(error=RuntimeError("socket closed"))})
        [result] = dispatch(["openai"], self.messages, registry=registry)
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "socket closed")

    def test_unknown_provider_becomes_error_entry(self):
        registry = ProviderRegistry({"gemini": fake_provider("ok")})
        results = dispatch(["gemini", "mistral"], self.messages, registry=registry)
        self.assertTrue(results[0].ok)
        self.assertEqual(results[1].error, "Provider mistral not found")

    def test_duplicate_ids_are_called_per_occurrence(self):
        provider = fake_provider("again")
        results = dispatch(["gemini", "gemini"], self.messages, registry=ProviderRegistry({"gemini": provider}))
        self.assertEqual(len(results), 2)
        self.assertEqual(provider.get_chat_completion.call_count, 2)

    def test_models_are_passed_per_slot(self):
        provider = fake_provider("ok")
        dispatch(
            ["gemini", "gemini"], self.messages,
            registry=ProviderRegistry({"gemini": provider}),
            models=["gemini-2.0-flash", None],
        )
        models = sorted(str(c.kwargs["model"]) for c in provider.get_chat_completion.call_args_list)
        self.assertEqual(models, ["None", "gemini-2.0-flash"])

    def test_model_list_length_must_match(self):
        with self.assertRaises(ValueError):
            dispatch(["gemini"], self.messages, registry=ProviderRegistry(), models=[None, None])

    def test_calls_are_in_flight_at_the_same_time(self):
        # Each call blocks until all three have started; sequential calls would break the barrier.
        barrier = threading.Barrier(3, timeout=5)

        def wait_then_reply(messages, model=None):
            barrier.wait()
            return "together"

        providers = {}
        for provider_id in ("gemini", "openai", "deepseek"):
            provider = MagicMock()
            provider.get_chat_completion.side_effect = wait_then_reply
            providers[provider_id] = provider

        results = dispatch(["gemini", "openai", "deepseek"], self.messages, registry=ProviderRegistry(providers))

        self.assertEqual([r.response for r in results], ["together"] * 3)
        self.assertTrue(all(r.ok for r in results))

    def test_system_prompt_is_prepended_per_slot(self):
        provider = fake_provider("ok")
        dispatch(
            ["gemini"], self.messages,
            registry=ProviderRegistry({"gemini": provider}),
            system_prompts=["Answer as a game designer."],
        )
        sent = provider.get_chat_completion.call_args.args[0]
        self.assertEqual(sent[0], {"role": "system", "content": "Answer as a game designer."})
        self.assertEqual(sent[1:], self.messages)

    def test_span_log_reports_failure_count(self):
        registry = ProviderRegistry({"gemini": fake_provider("A")})
        with self.assertLogs('classroom.trace', level='INFO') as logs:
            dispatch(["gemini", "mistral"], self.messages, registry=registry)
        self.assertTrue(any("span dispatch finished" in line and "failures=1" in line for line in logs.output))
