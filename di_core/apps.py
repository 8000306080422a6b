from django.apps import AppConfig
from django.conf import settings


class DICoreConfig(AppConfig):
    name = "di_core"
    verbose_name = "Dependency injection"

    def ready(self) -> None:
        from di_core import containers

        container = containers.AppContainer()
        container.config.from_dict(
            {"RECURRENCES_DATABASE_ALIAS": settings.RECURRENCES_DATABASE_ALIAS}
        )
        container.wire(modules=settings.DI_WIRED_MODULES)

        containers.container = container
