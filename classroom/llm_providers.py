import abc
from functools import lru_cache
from typing import List, Dict, Any, Optional
from django.conf import settings
import openai
import requests
import logging


logger = logging.getLogger(__name__) # Initialize module-level logger

# --- Custom Exceptions ---

class ProviderError(Exception):
    """Base exception for AI provider errors. Carries the vendor status code when there is one."""
    def __init__(self, message, status_code=500, provider=None, raw_response=None):
        super().__init__(message)
        self.status_code = status_code
        self.provider = provider
        self.raw_response = raw_response

class ProviderRateLimitError(ProviderError):
    """Exception raised when the provider rate limit or quota is exceeded."""
    def __init__(self, message="Rate limit exceeded", provider=None, raw_response=None):
        super().__init__(message, status_code=429, provider=provider, raw_response=raw_response)

class ProviderAuthenticationError(ProviderError):
    """Exception raised when the API key is missing or rejected."""
    def __init__(self, message="Authentication failed", status_code=401, provider=None):
        super().__init__(message, status_code=status_code, provider=provider)

class ProviderInvalidRequestError(ProviderError):
    """Exception raised when the request sent to the provider is invalid."""
    def __init__(self, message="Invalid request", provider=None, raw_response=None):
        super().__init__(message, status_code=400, provider=provider, raw_response=raw_response)

class ProviderUnavailableError(ProviderError):
    """Exception raised when the provider cannot be reached or fails server-side."""
    def __init__(self, message="Service unavailable", status_code=503, provider=None):
        super().__init__(message, status_code=status_code, provider=provider)

class ProviderNotConfiguredError(ProviderError):
    """Exception raised when a provider id has no registered adapter."""
    def __init__(self, provider_id):
        super().__init__(f"Provider {provider_id} not found", status_code=404, provider=provider_id)


def error_from_status(status_code: int, message: str, provider: str = None, raw_response=None) -> ProviderError:
    """Map a vendor HTTP status to the matching ProviderError subclass."""
    if status_code == 429:
        return ProviderRateLimitError(message, provider=provider, raw_response=raw_response)
    elif status_code in (401, 403):
        return ProviderAuthenticationError(message, status_code=status_code, provider=provider)
    elif status_code == 400:
        return ProviderInvalidRequestError(message, provider=provider, raw_response=raw_response)
    elif status_code >= 500:
        return ProviderUnavailableError(message, status_code=status_code, provider=provider)
    return ProviderError(message, status_code=status_code, provider=provider, raw_response=raw_response)


# --- Base Provider Class ---

class BaseLLMProvider(abc.ABC):
    """Base abstract class for AI providers.

    Adapters take a normalized message list (dicts with ``role`` in
    system/user/assistant and ``content``) and return the reply text.
    They never retry; any failure is raised as a ProviderError.
    """

    provider_id: str = ""
    api_key_setting: str = ""
    base_url_setting: str = ""
    default_model_setting: str = ""
    fallback_model: str = ""
    fallback_base_url: str = ""

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None, timeout: float = None):
        self.api_key = api_key
        self.model = model or getattr(settings, self.default_model_setting, None) or self.fallback_model
        self.base_url = (base_url or getattr(settings, self.base_url_setting, None) or self.fallback_base_url).rstrip("/")
        self.timeout = timeout or getattr(settings, 'PROVIDER_REQUEST_TIMEOUT', 60)

    @classmethod
    def from_settings(cls) -> Optional["BaseLLMProvider"]:
        """Build the adapter from Django settings, or return None when no API key is set."""
        api_key = getattr(settings, cls.api_key_setting, None)
        if not api_key or not api_key.strip():
            return None
        return cls(api_key=api_key.strip())

    @abc.abstractmethod
    def get_chat_completion(self, messages: List[Dict[str, Any]], model: str = None) -> str:
        """Send the conversation and return the assistant reply text."""
        raise NotImplementedError

    def get_provider_name(self) -> str:
        """Returns the name of the provider (e.g., 'Gemini', 'DeepSeek')."""
        return self.__class__.__name__.replace("Provider", "")

    def _require_api_key(self):
        if not self.api_key:
            raise ProviderAuthenticationError(
                f"{self.get_provider_name()} API key is not configured.", provider=self.provider_id
            )


# --- Gemini Provider ---

class GeminiProvider(BaseLLMProvider):
    """Provider for the Google Generative Language REST API."""

    provider_id = "gemini"
    api_key_setting = "GEMINI_API_KEY"
    base_url_setting = "GEMINI_BASE_URL"
    default_model_setting = "DEFAULT_GEMINI_MODEL"
    fallback_model = "gemini-2.0-flash"
    fallback_base_url = "https://generativelanguage.googleapis.com/v1beta"

    @staticmethod
    def build_payload(messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Translate normalized messages into a generateContent request body."""
        contents = [
            {
                "role": "user" if msg.get("role") == "user" else "model",
                "parts": [{"text": msg.get("content", "")}],
            }
            for msg in messages
            if msg.get("role") != "system"
        ]
        payload = {"contents": contents}
        system_text = next((msg.get("content") for msg in messages if msg.get("role") == "system"), None)
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}
        return payload

    def get_chat_completion(self, messages: List[Dict[str, Any]], model: str = None) -> str:
        self._require_api_key()
        effective_model = model or self.model
        url = f"{self.base_url}/models/{effective_model}:generateContent"
        logger.debug(f"Calling Gemini model '{effective_model}' with {len(messages)} messages")

        try:
            response = requests.post(
                url,
                params={"key": self.api_key},
                json=self.build_payload(messages),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailableError(f"Gemini request failed: {e}", provider=self.provider_id)

        if response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("error", {}).get("message") or response.text
            except ValueError:
                message = response.text or response.reason
            raise error_from_status(
                response.status_code, f"Gemini API error: {message}",
                provider=self.provider_id, raw_response=response.text,
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderError(
                "Gemini API returned invalid JSON", status_code=502,
                provider=self.provider_id, raw_response=response.text,
            )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ProviderError(
                "Gemini API returned no candidate text", status_code=502,
                provider=self.provider_id, raw_response=data,
            )


# --- OpenAI-compatible Providers ---

class OpenAICompatibleProvider(BaseLLMProvider):
    """Chat completions through the openai SDK against any compatible base URL."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.client: Optional[openai.OpenAI] = None

    def _initialize_client(self) -> openai.OpenAI:
        """Initialize the OpenAI client for this provider's base URL."""
        self._require_api_key()
        if self.client is None:
            logger.debug(f"Initializing OpenAI client for {self.get_provider_name()} at {self.base_url}")
            self.client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self.client

    def get_chat_completion(self, messages: List[Dict[str, Any]], model: str = None) -> str:
        client = self._initialize_client()
        effective_model = model or self.model
        name = self.get_provider_name()
        logger.debug(f"Calling {name} model '{effective_model}' with {len(messages)} messages")

        try:
            completion = client.chat.completions.create(
                model=effective_model,
                messages=[{"role": msg["role"], "content": msg["content"]} for msg in messages],
                max_tokens=getattr(settings, "LLM_MAX_OUTPUT_TOKENS", 4096),
            )
        except openai.APIStatusError as e:
            raise error_from_status(
                e.status_code, f"{name} API error: {e.message}",
                provider=self.provider_id, raw_response=e.body,
            )
        except openai.APIConnectionError as e:
            # Also covers APITimeoutError.
            raise ProviderUnavailableError(f"{name} connection failed: {e}", provider=self.provider_id)
        except openai.APIError as e:
            # Response validation and other SDK failures without an HTTP status.
            raise ProviderError(f"{name} API error: {e}", status_code=502, provider=self.provider_id)

        if not completion.choices:
            raise ProviderError(f"{name} API returned no choices", status_code=502, provider=self.provider_id)
        return completion.choices[0].message.content or ""


class OpenAIProvider(OpenAICompatibleProvider):
    """Provider for the OpenAI API."""

    provider_id = "openai"
    api_key_setting = "OPENAI_API_KEY"
    base_url_setting = "OPENAI_BASE_URL"
    default_model_setting = "DEFAULT_OPENAI_MODEL"
    fallback_model = "gpt-4"
    fallback_base_url = "https://api.openai.com/v1"


class DeepSeekProvider(OpenAICompatibleProvider):
    """Provider for the DeepSeek API."""

    provider_id = "deepseek"
    api_key_setting = "DEEPSEEK_API_KEY"
    base_url_setting = "DEEPSEEK_BASE_URL"
    default_model_setting = "DEFAULT_DEEPSEEK_MODEL"
    fallback_model = "deepseek-chat"
    fallback_base_url = "https://api.deepseek.com/v1"


class QwenProvider(OpenAICompatibleProvider):
    """Provider for Qwen through DashScope's OpenAI-compatible mode."""

    provider_id = "qwen"
    api_key_setting = "DASHSCOPE_API_KEY"
    base_url_setting = "DASHSCOPE_BASE_URL"
    default_model_setting = "DEFAULT_QWEN_MODEL"
    fallback_model = "qwen-max"
    fallback_base_url = "https://dashscope.aliyuncs.com/compatible-mode/v1"


PROVIDER_CLASSES = {
    cls.provider_id: cls
    for cls in (GeminiProvider, OpenAIProvider, QwenProvider, DeepSeekProvider)
}


# --- Registry ---

class ProviderRegistry:
    """Maps provider ids to adapter instances."""

    def __init__(self, providers: Dict[str, BaseLLMProvider] = None):
        self._providers: Dict[str, BaseLLMProvider] = dict(providers or {})

    @classmethod
    def from_settings(cls) -> "ProviderRegistry":
        """Register every provider whose API key is configured."""
        registry = cls()
        for provider_id, provider_cls in PROVIDER_CLASSES.items():
            provider = provider_cls.from_settings()
            if provider is not None:
                registry.register(provider_id, provider)
        logger.info(f"Provider registry built with: {registry.available() or 'no providers'}")
        return registry

    def register(self, provider_id: str, provider: BaseLLMProvider) -> None:
        self._providers[provider_id] = provider

    def get(self, provider_id: str) -> BaseLLMProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotConfiguredError(provider_id)
        return provider

    def available(self) -> List[str]:
        return list(self._providers.keys())

    def __contains__(self, provider_id) -> bool:
        return provider_id in self._providers


@lru_cache(maxsize=1)
def get_provider_registry() -> ProviderRegistry:
    """Process-wide registry built once from settings."""
    return ProviderRegistry.from_settings()
