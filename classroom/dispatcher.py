"""Concurrent fan-out of one conversation to several AI providers.

Every requested call is submitted before any result is collected, and each
call settles independently: a failing provider turns into an error entry
in its own slot while the others still return their replies.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .llm_providers import ProviderRegistry, get_provider_registry
from .trace import trace_span

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    provider_id: str
    response: str = ""
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = {"providerId": self.provider_id, "response": self.response}
        if self.error is not None:
            data["error"] = self.error
        return data


def _call_provider(
    registry: ProviderRegistry, provider_id: str, messages, model: Optional[str], system_prompt: Optional[str] = None,
) -> DispatchResult:
    if system_prompt:
        messages = [{"role": "system", "content": system_prompt}] + list(messages)
    try:
        provider = registry.get(provider_id)
        reply = provider.get_chat_completion(messages, model=model)
        return DispatchResult(provider_id=provider_id, response=reply or "")
    except Exception as e:
        logger.warning(f"Provider '{provider_id}' failed: {e}")
        return DispatchResult(provider_id=provider_id, response="", error=str(e) or e.__class__.__name__)


def dispatch(
    provider_ids: Sequence[str],
    messages: List[Dict[str, Any]],
    registry: ProviderRegistry = None,
    models: Optional[Sequence[Optional[str]]] = None,
    system_prompts: Optional[Sequence[Optional[str]]] = None,
) -> List[DispatchResult]:
    """Send ``messages`` to every provider in ``provider_ids`` concurrently.

    Returns exactly one result per requested id, in request order. Duplicate
    ids are called once per occurrence. ``models`` optionally gives the model
    for each slot; ``None`` entries fall back to the adapter's default.
    ``system_prompts`` likewise gives an optional system message per slot.
    Never raises for provider failures.
    """
    provider_ids = list(provider_ids)
    if not provider_ids:
        return []
    if models is not None and len(models) != len(provider_ids):
        raise ValueError("models must have one entry per provider id")
    if system_prompts is not None and len(system_prompts) != len(provider_ids):
        raise ValueError("system_prompts must have one entry per provider id")

    registry = registry or get_provider_registry()
    slot_models = list(models) if models is not None else [None] * len(provider_ids)
    slot_prompts = list(system_prompts) if system_prompts is not None else [None] * len(provider_ids)

    with trace_span("dispatch", providers=provider_ids) as span:
        with ThreadPoolExecutor(max_workers=len(provider_ids), thread_name_prefix="dispatch") as executor:
            futures = [
                executor.submit(_call_provider, registry, provider_id, messages, model, prompt)
                for provider_id, model, prompt in zip(provider_ids, slot_models, slot_prompts)
            ]
            results = [future.result() for future in futures]
        failed = [r.provider_id for r in results if not r.ok]
        span["failures"] = len(failed)

    if failed:
        logger.info(f"Dispatch finished with {len(failed)}/{len(results)} failures: {failed}")
    return results
