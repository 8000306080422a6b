from dependency_injector import containers, providers

from recurrences.services.mutation_service import MutationService
from recurrences.services.repositories.django_orm import (
    DjangoCancellationRepository,
    DjangoModificationRepository,
    DjangoRecurrencePatternRepository,
    DjangoStandaloneInstanceRepository,
    DjangoTransactionContext,
)
from recurrences.services.virtualization_service import VirtualizationService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    recurrence_pattern_repository = providers.Singleton(
        DjangoRecurrencePatternRepository,
        using=config.RECURRENCES_DATABASE_ALIAS,
    )
    standalone_instance_repository = providers.Singleton(
        DjangoStandaloneInstanceRepository,
        using=config.RECURRENCES_DATABASE_ALIAS,
    )
    cancellation_repository = providers.Singleton(
        DjangoCancellationRepository,
        using=config.RECURRENCES_DATABASE_ALIAS,
    )
    modification_repository = providers.Singleton(
        DjangoModificationRepository,
        using=config.RECURRENCES_DATABASE_ALIAS,
    )

    transaction_context = providers.Factory(
        DjangoTransactionContext,
        using=config.RECURRENCES_DATABASE_ALIAS,
    )

    virtualization_service = providers.Factory(
        VirtualizationService,
        pattern_repository=recurrence_pattern_repository,
        instance_repository=standalone_instance_repository,
        cancellation_repository=cancellation_repository,
        modification_repository=modification_repository,
    )

    mutation_service = providers.Factory(
        MutationService,
        pattern_repository=recurrence_pattern_repository,
        instance_repository=standalone_instance_repository,
        cancellation_repository=cancellation_repository,
        modification_repository=modification_repository,
        transaction_factory=transaction_context.provider,
    )


container: AppContainer | None = None  # set during app startup
