# sterile_core/apps.py

from django.apps import AppConfig


class SterileCoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sterile_core"
    verbose_name = "Sterilization core"
