import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from django.conf import settings
from django.utils import timezone

from .dispatcher import dispatch
from .llm_providers import ProviderRegistry
from .models import AIConfig, Conversation, Message
from .trace import trace_span

logger = logging.getLogger(__name__)

ERROR_PREFIX = "[Error]"


@dataclass
class TurnResult:
    user_message: Message
    assistant_messages: List[Message] = field(default_factory=list)


def default_title(now=None):
    now = timezone.localtime(now or timezone.now())
    return f"New conversation {now:%Y-%m-%d %H:%M:%S}"


def create_conversation(user, title: Optional[str] = None) -> Conversation:
    return Conversation.objects.create(user=user, title=title or default_title())


def context_window_size() -> int:
    return getattr(settings, "CONTEXT_WINDOW_MESSAGES", 20)


def build_context_window(conversation: Conversation, limit: int = None) -> List[Dict[str, str]]:
    """The most recent ``limit`` messages, oldest first, as provider-ready dicts."""
    limit = limit or context_window_size()
    recent = list(conversation.messages.order_by("-created_at", "-id")[:limit])
    recent.reverse()
    return [{"role": msg.role, "content": msg.content} for msg in recent]


def resolve_ai_configs(ai_config_ids: Sequence[int]) -> List[AIConfig]:
    """Active configs in request order. Unknown or inactive ids are dropped; repeats are kept."""
    by_id = AIConfig.objects.filter(id__in=set(ai_config_ids), is_active=True).in_bulk()
    return [by_id[config_id] for config_id in ai_config_ids if config_id in by_id]


def send_message(
    conversation: Conversation,
    content: str,
    ai_configs: Sequence[AIConfig],
    registry: ProviderRegistry = None,
) -> TurnResult:
    """Run one conversation turn.

    The user message is stored before any provider is called, so it survives
    even if every provider fails. Each AI config gets one assistant message,
    attributed to that config; failures are stored as ``[Error] ...`` replies
    flagged with ``is_error``.
    """
    user_message = Message.objects.create(conversation=conversation, role="user", content=content)
    result = TurnResult(user_message=user_message)

    if not ai_configs:
        logger.info(f"Conversation {conversation.pk}: no active AI configs requested, storing user message only")
        Conversation.objects.filter(pk=conversation.pk).update(updated_at=timezone.now())
        return result

    history = build_context_window(conversation)

    with trace_span("conversation_turn", conversation_id=conversation.pk, configs=[c.pk for c in ai_configs]) as span:
        responses = dispatch(
            [config.provider for config in ai_configs],
            history,
            registry=registry,
            models=[config.model or None for config in ai_configs],
            system_prompts=[config.system_prompt or None for config in ai_configs],
        )

        for config, response in zip(ai_configs, responses):
            if response.ok:
                message = Message.objects.create(
                    conversation=conversation, role="assistant", content=response.response, ai_config=config,
                )
            else:
                message = Message.objects.create(
                    conversation=conversation,
                    role="assistant",
                    content=f"{ERROR_PREFIX} {response.error}",
                    ai_config=config,
                    is_error=True,
                )
            result.assistant_messages.append(message)
        span["errors"] = sum(1 for m in result.assistant_messages if m.is_error)

    Conversation.objects.filter(pk=conversation.pk).update(updated_at=timezone.now())
    return result
