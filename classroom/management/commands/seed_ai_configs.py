from django.core.management.base import BaseCommand
from classroom.models import AIConfig
from classroom.templates import get_or_create_default_template
import logging

logger = logging.getLogger(__name__)

DEFAULT_AI_CONFIGS = [
    {
        "name": "Gemini Pro",
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "avatar": "🔮",
        "description": "Google's capable model, strong at reasoning and creative writing",
        "system_prompt": "You are a friendly, professional assistant who helps people think problems through. Answer concisely and clearly.",
    },
    {
        "name": "GPT-4",
        "provider": "openai",
        "model": "gpt-4",
        "avatar": "🧠",
        "description": "OpenAI's flagship model with strong all-round ability",
        "system_prompt": "You are a friendly, professional assistant. Answer concisely and clearly and offer useful insight.",
    },
    {
        "name": "Qwen3 Max",
        "provider": "qwen",
        "model": "qwen-max",
        "avatar": "🌟",
        "description": "Alibaba's strongest Qwen model, excellent language understanding",
        "system_prompt": "You are a friendly, professional assistant. Answer concisely and clearly and offer useful insight.",
    },
    {
        "name": "DeepSeek Chat",
        "provider": "deepseek",
        "model": "deepseek-chat",
        "avatar": "🌊",
        "description": "Cost-effective general model with solid multilingual support",
        "system_prompt": "You are a friendly, professional assistant. Answer concisely and clearly.",
    },
]


class Command(BaseCommand):
    help = 'Create the default AI configs and task template if they do not exist yet'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-template',
            action='store_true',
            help='Only seed AI configs, not the default task template',
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('🌱 Seeding database...'))

        created = 0
        for config in DEFAULT_AI_CONFIGS:
            # Identity is provider + model; an existing row is left untouched.
            _, was_created = AIConfig.objects.get_or_create(
                provider=config["provider"],
                model=config["model"],
                defaults=config,
            )
            if was_created:
                created += 1
                self.stdout.write(self.style.SUCCESS(f"✅ Created AI config: {config['name']}"))
            else:
                self.stdout.write(f"⏭️  Skipped (already exists): {config['name']}")

        if not options['skip_template']:
            template = get_or_create_default_template()
            self.stdout.write(self.style.SUCCESS(f"✅ Default task template ready: {template.name}"))

        logger.info(f"Seeded {created} new AI configs")
        self.stdout.write(self.style.SUCCESS('🎉 Seeding complete!'))
