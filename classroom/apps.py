from django.apps import AppConfig
import logging
from django.conf import settings

logger = logging.getLogger(__name__)

PROVIDER_KEY_SETTINGS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "qwen": "DASHSCOPE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


class ClassroomConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'classroom'

    def ready(self):
        """Called when Django starts up"""
        self.report_provider_keys()

    def report_provider_keys(self):
        """Log which AI providers have an API key. The server still starts with none."""
        configured = []
        for provider_id, setting_name in PROVIDER_KEY_SETTINGS.items():
            value = getattr(settings, setting_name, None)
            if value and value.strip():
                configured.append(provider_id)
            else:
                logger.debug(f"{setting_name} is not set; provider '{provider_id}' disabled")

        if not configured:
            logger.warning("No AI provider API keys configured. Every AI reply will be an error message.")
        else:
            logger.info(f"AI providers configured: {', '.join(configured)}")
        return configured
