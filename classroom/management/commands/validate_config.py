from django.core.management.base import BaseCommand, CommandError
from django.conf import settings
from django.db import DatabaseError, connection

from classroom.apps import PROVIDER_KEY_SETTINGS


class Command(BaseCommand):
    help = 'Validate AI provider keys, upload settings and database connectivity'

    def handle(self, *args, **options):
        self.stdout.write(self.style.SUCCESS('🔍 Validating configuration...'))

        errors = []
        warnings = []

        # Provider keys: the server runs with any subset, but not with none.
        configured = []
        for provider_id, setting_name in PROVIDER_KEY_SETTINGS.items():
            value = getattr(settings, setting_name, None)
            if value and value.strip():
                configured.append(provider_id)
                self.stdout.write(self.style.SUCCESS(f"✅ {setting_name} is configured ({provider_id})"))
            else:
                warnings.append(f"⚠️  {setting_name} is not set - provider '{provider_id}' will return errors")
        if not configured:
            errors.append("❌ No AI provider API key is configured")

        timeout = getattr(settings, 'PROVIDER_REQUEST_TIMEOUT', None)
        if not timeout or timeout <= 0:
            errors.append("❌ PROVIDER_REQUEST_TIMEOUT must be a positive number of seconds")

        upload_limit = getattr(settings, 'UPLOAD_MAX_BYTES', None)
        if not upload_limit or upload_limit <= 0:
            errors.append("❌ UPLOAD_MAX_BYTES must be positive")
        else:
            self.stdout.write(self.style.SUCCESS(
                f"✅ Uploads stored in {getattr(settings, 'UPLOAD_DIR', 'uploads')} "
                f"(max {upload_limit // (1024 * 1024)}MB)"
            ))

        # Check database
        try:
            connection.ensure_connection()
            self.stdout.write(self.style.SUCCESS("✅ Database connection successful"))
        except DatabaseError as e:
            errors.append(f"❌ Database connection failed: {e}")

        for warning in warnings:
            self.stdout.write(self.style.WARNING(warning))

        if errors:
            self.stdout.write(self.style.ERROR("\n🚨 CONFIGURATION ERRORS:"))
            for error in errors:
                self.stdout.write(self.style.ERROR(error))

            self.stdout.write(self.style.ERROR("\n💡 To fix these issues:"))
            self.stdout.write(self.style.ERROR("1. Set at least one provider key in your environment or .env file:"))
            self.stdout.write(self.style.ERROR("   export DEEPSEEK_API_KEY='your-api-key-here'"))
            self.stdout.write(self.style.ERROR("2. Run migrations before starting the server:"))
            self.stdout.write(self.style.ERROR("   python manage.py migrate"))

            raise CommandError("Configuration validation failed")

        self.stdout.write(self.style.SUCCESS("\n🎉 All configurations are valid!"))
