"""
App configuration for users and profiles.
"""

from django.apps import AppConfig


class AuthenticationConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "authentication"
    verbose_name = "Users"

    def ready(self):
        # Profile auto-creation
        from authentication import signals  # noqa: F401
