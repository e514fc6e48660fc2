from django.apps import AppConfig


class RestInterfaceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "scoreforge.interfaces.rest"
    verbose_name = "ScoreForge REST API"
