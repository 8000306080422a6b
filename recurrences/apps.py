from django.apps import AppConfig


class RecurrencesConfig(AppConfig):
    name = "recurrences"
    verbose_name = "Recurrences"
