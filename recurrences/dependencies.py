"""Entry points handing out the services configured in ``di_core.containers.AppContainer``."""

from typing import Annotated

from dependency_injector.wiring import Provide, inject

from recurrences.exceptions import RecurrenceServiceNotInjectedError
from recurrences.services.mutation_service import MutationService
from recurrences.services.virtualization_service import VirtualizationService


@inject
def get_virtualization_service(
    virtualization_service: Annotated[
        "VirtualizationService | None", Provide["virtualization_service"]
    ] = None,
) -> VirtualizationService:
    if virtualization_service is None:
        raise RecurrenceServiceNotInjectedError(
            "VirtualizationService is not available. Is `di_core` in INSTALLED_APPS?"
        )
    return virtualization_service


@inject
def get_mutation_service(
    mutation_service: Annotated["MutationService | None", Provide["mutation_service"]] = None,
) -> MutationService:
    if mutation_service is None:
        raise RecurrenceServiceNotInjectedError(
            "MutationService is not available. Is `di_core` in INSTALLED_APPS?"
        )
    return mutation_service
