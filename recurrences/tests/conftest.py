import pytest

from recurrences.services.mutation_service import MutationService
from recurrences.services.repositories.in_memory import (
    InMemoryCancellationRepository,
    InMemoryModificationRepository,
    InMemoryRecurrencePatternRepository,
    InMemoryStandaloneInstanceRepository,
    InMemoryStore,
    InMemoryTransactionContext,
)
from recurrences.services.virtualization_service import VirtualizationService


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def pattern_repository(store):
    return InMemoryRecurrencePatternRepository(store)


@pytest.fixture
def instance_repository(store):
    return InMemoryStandaloneInstanceRepository(store)


@pytest.fixture
def cancellation_repository(store):
    return InMemoryCancellationRepository(store)


@pytest.fixture
def modification_repository(store):
    return InMemoryModificationRepository(store)


@pytest.fixture
def opened_transactions():
    return []


@pytest.fixture
def transaction_factory(store, opened_transactions):
    def factory():
        transaction = InMemoryTransactionContext(store)
        opened_transactions.append(transaction)
        return transaction

    return factory


@pytest.fixture
def virtualization_service(
    pattern_repository, instance_repository, cancellation_repository, modification_repository
):
    return VirtualizationService(
        pattern_repository=pattern_repository,
        instance_repository=instance_repository,
        cancellation_repository=cancellation_repository,
        modification_repository=modification_repository,
    )


@pytest.fixture
def mutation_service(
    pattern_repository,
    instance_repository,
    cancellation_repository,
    modification_repository,
    transaction_factory,
):
    return MutationService(
        pattern_repository=pattern_repository,
        instance_repository=instance_repository,
        cancellation_repository=cancellation_repository,
        modification_repository=modification_repository,
        transaction_factory=transaction_factory,
    )
