import datetime
import uuid
from collections.abc import AsyncIterator, Iterable
from typing import Protocol

from recurrences.services.dataclasses import (
    CancellationData,
    ModificationData,
    RecurrencePatternData,
    StandaloneInstanceData,
)
from recurrences.services.protocols.transaction_context import TransactionContext


class RecurrencePatternRepository(Protocol):
    async def create(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        ...

    async def get_by_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> RecurrencePatternData | None:
        ...

    async def update(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        """Persists only the mutable fields: ``duration`` and ``extensions``."""
        ...

    async def delete(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        """Deletes the pattern along with its cancellations and modifications."""
        ...

    def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[RecurrencePatternData]:
        ...


class StandaloneInstanceRepository(Protocol):
    async def create(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        ...

    async def get_by_id(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> StandaloneInstanceData | None:
        ...

    async def update(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        ...

    async def delete(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        ...

    def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[StandaloneInstanceData]:
        ...


class CancellationRepository(Protocol):
    async def create(
        self, cancellation: CancellationData, transaction: TransactionContext | None = None
    ) -> CancellationData:
        ...

    async def get_by_id(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        ...

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        ...

    def get_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[CancellationData]:
        ...

    def get_by_pattern_ids(
        self,
        pattern_ids: Iterable[uuid.UUID],
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[CancellationData]:
        ...

    async def delete(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        ...

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        ...


class ModificationRepository(Protocol):
    async def create(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        ...

    async def get_by_id(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        ...

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        ...

    def get_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        ...

    def get_in_range(
        self,
        organization: str,
        resource_path: str,
        pattern_ids: Iterable[uuid.UUID],
        start: datetime.datetime,
        end: datetime.datetime,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        """
        Yields modifications of the given patterns whose ``original_time_utc`` falls in
        [start, end) or whose own [start_time, end_time) overlaps it.
        """
        ...

    async def update(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        """Persists ``start_time``, ``duration`` and ``extensions``."""
        ...

    async def delete(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        ...

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        ...
