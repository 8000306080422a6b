"""
Dictionary-backed repositories. Useful for tests and for embedding the services without a
database. All four repositories share one ``InMemoryStore``.
"""

import copy
import datetime
import uuid
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Self

from recurrences.exceptions import (
    DuplicateEntryError,
    EntryNotFoundError,
    TenantScopeMismatchError,
)
from recurrences.services.dataclasses import (
    CancellationData,
    ModificationData,
    RecurrencePatternData,
    StandaloneInstanceData,
)
from recurrences.services.protocols.transaction_context import TransactionContext


@dataclass
class InMemoryStore:
    patterns: dict[uuid.UUID, RecurrencePatternData] = dataclass_field(default_factory=dict)
    instances: dict[uuid.UUID, StandaloneInstanceData] = dataclass_field(default_factory=dict)
    cancellations: dict[uuid.UUID, CancellationData] = dataclass_field(default_factory=dict)
    modifications: dict[uuid.UUID, ModificationData] = dataclass_field(default_factory=dict)

    def snapshot(self) -> "InMemoryStore":
        return copy.deepcopy(self)

    def restore(self, snapshot: "InMemoryStore") -> None:
        self.patterns = snapshot.patterns
        self.instances = snapshot.instances
        self.cancellations = snapshot.cancellations
        self.modifications = snapshot.modifications


class InMemoryTransactionContext:
    """Snapshots the store on enter and puts the snapshot back if the block raises."""

    def __init__(self, store: InMemoryStore):
        self.store = store
        self._snapshot: InMemoryStore | None = None

    async def __aenter__(self) -> Self:
        self._snapshot = self.store.snapshot()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        if exc_type is not None and self._snapshot is not None:
            self.store.restore(self._snapshot)
        self._snapshot = None


def _in_scope(record, organization: str, resource_path: str) -> bool:
    return record.organization == organization and record.resource_path == resource_path


def _check_parent_pattern(store: InMemoryStore, child: CancellationData | ModificationData):
    pattern = store.patterns.get(child.recurrence_id)
    if pattern is None:
        raise EntryNotFoundError("RecurrencePattern", child.recurrence_id)
    if child.organization != pattern.organization:
        raise TenantScopeMismatchError("organization", child.organization, pattern.organization)
    if child.resource_path != pattern.resource_path:
        raise TenantScopeMismatchError(
            "resource_path", child.resource_path, pattern.resource_path
        )


class InMemoryRecurrencePatternRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        self.store.patterns[pattern.id] = copy.deepcopy(pattern)
        return copy.deepcopy(pattern)

    async def get_by_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> RecurrencePatternData | None:
        pattern = self.store.patterns.get(pattern_id)
        if pattern is None or not _in_scope(pattern, organization, resource_path):
            return None
        return copy.deepcopy(pattern)

    async def update(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        stored = self.store.patterns.get(pattern.id)
        if stored is None or not _in_scope(stored, pattern.organization, pattern.resource_path):
            raise EntryNotFoundError("RecurrencePattern", pattern.id)

        stored.duration = pattern.duration
        stored.extensions = dict(pattern.extensions)
        return copy.deepcopy(stored)

    async def delete(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        pattern = self.store.patterns.get(pattern_id)
        if pattern is None or not _in_scope(pattern, organization, resource_path):
            return

        del self.store.patterns[pattern_id]
        self.store.cancellations = {
            key: cancellation
            for key, cancellation in self.store.cancellations.items()
            if cancellation.recurrence_id != pattern_id
        }
        self.store.modifications = {
            key: modification
            for key, modification in self.store.modifications.items()
            if modification.recurrence_id != pattern_id
        }

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[RecurrencePatternData]:
        types = set(types) if types is not None else None
        for pattern in list(self.store.patterns.values()):
            if not _in_scope(pattern, organization, resource_path):
                continue
            if types is not None and pattern.type not in types:
                continue
            if pattern.start_time < end and pattern.recurrence_end_time >= start:
                yield copy.deepcopy(pattern)


class InMemoryStandaloneInstanceRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        self.store.instances[instance.id] = copy.deepcopy(instance)
        return copy.deepcopy(instance)

    async def get_by_id(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> StandaloneInstanceData | None:
        instance = self.store.instances.get(instance_id)
        if instance is None or not _in_scope(instance, organization, resource_path):
            return None
        return copy.deepcopy(instance)

    async def update(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        stored = self.store.instances.get(instance.id)
        if stored is None or not _in_scope(stored, instance.organization, instance.resource_path):
            raise EntryNotFoundError("StandaloneInstance", instance.id)

        stored.start_time = instance.start_time
        stored.duration = instance.duration
        stored.extensions = dict(instance.extensions)
        return copy.deepcopy(stored)

    async def delete(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        instance = self.store.instances.get(instance_id)
        if instance is not None and _in_scope(instance, organization, resource_path):
            del self.store.instances[instance_id]

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[StandaloneInstanceData]:
        types = set(types) if types is not None else None
        for instance in list(self.store.instances.values()):
            if not _in_scope(instance, organization, resource_path):
                continue
            if types is not None and instance.type not in types:
                continue
            if instance.start_time < end and instance.end_time > start:
                yield copy.deepcopy(instance)


class InMemoryCancellationRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self, cancellation: CancellationData, transaction: TransactionContext | None = None
    ) -> CancellationData:
        _check_parent_pattern(self.store, cancellation)
        for existing in self.store.cancellations.values():
            if (
                existing.recurrence_id == cancellation.recurrence_id
                and existing.original_time_utc == cancellation.original_time_utc
            ):
                raise DuplicateEntryError(
                    "Cancellation", cancellation.recurrence_id, cancellation.original_time_utc
                )

        self.store.cancellations[cancellation.id] = copy.deepcopy(cancellation)
        return copy.deepcopy(cancellation)

    async def get_by_id(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        cancellation = self.store.cancellations.get(cancellation_id)
        if cancellation is None or not _in_scope(cancellation, organization, resource_path):
            return None
        return copy.deepcopy(cancellation)

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        for cancellation in self.store.cancellations.values():
            if (
                cancellation.recurrence_id == pattern_id
                and cancellation.original_time_utc == original_time_utc
                and _in_scope(cancellation, organization, resource_path)
            ):
                return copy.deepcopy(cancellation)
        return None

    async def get_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[CancellationData]:
        cancellations = self.get_by_pattern_ids([pattern_id], organization, resource_path)
        async for cancellation in cancellations:
            yield cancellation

    async def get_by_pattern_ids(
        self,
        pattern_ids: Iterable[uuid.UUID],
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[CancellationData]:
        pattern_ids = set(pattern_ids)
        for cancellation in list(self.store.cancellations.values()):
            if cancellation.recurrence_id in pattern_ids and _in_scope(
                cancellation, organization, resource_path
            ):
                yield copy.deepcopy(cancellation)

    async def delete(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        cancellation = self.store.cancellations.get(cancellation_id)
        if cancellation is not None and _in_scope(cancellation, organization, resource_path):
            del self.store.cancellations[cancellation_id]

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        self.store.cancellations = {
            key: cancellation
            for key, cancellation in self.store.cancellations.items()
            if not (
                cancellation.recurrence_id == pattern_id
                and _in_scope(cancellation, organization, resource_path)
            )
        }


class InMemoryModificationRepository:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        _check_parent_pattern(self.store, modification)
        for existing in self.store.modifications.values():
            if (
                existing.recurrence_id == modification.recurrence_id
                and existing.original_time_utc == modification.original_time_utc
            ):
                raise DuplicateEntryError(
                    "Modification", modification.recurrence_id, modification.original_time_utc
                )

        self.store.modifications[modification.id] = copy.deepcopy(modification)
        return copy.deepcopy(modification)

    async def get_by_id(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        modification = self.store.modifications.get(modification_id)
        if modification is None or not _in_scope(modification, organization, resource_path):
            return None
        return copy.deepcopy(modification)

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        for modification in self.store.modifications.values():
            if (
                modification.recurrence_id == pattern_id
                and modification.original_time_utc == original_time_utc
                and _in_scope(modification, organization, resource_path)
            ):
                return copy.deepcopy(modification)
        return None

    async def get_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        for modification in list(self.store.modifications.values()):
            if modification.recurrence_id == pattern_id and _in_scope(
                modification, organization, resource_path
            ):
                yield copy.deepcopy(modification)

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        pattern_ids: Iterable[uuid.UUID],
        start: datetime.datetime,
        end: datetime.datetime,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        pattern_ids = set(pattern_ids)
        for modification in list(self.store.modifications.values()):
            if modification.recurrence_id not in pattern_ids or not _in_scope(
                modification, organization, resource_path
            ):
                continue

            replaced_in_range = start <= modification.original_time_utc < end
            overlaps_range = modification.start_time < end and modification.end_time > start
            if replaced_in_range or overlaps_range:
                yield copy.deepcopy(modification)

    async def update(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        stored = self.store.modifications.get(modification.id)
        if stored is None or not _in_scope(
            stored, modification.organization, modification.resource_path
        ):
            raise EntryNotFoundError("Modification", modification.id)

        stored.start_time = modification.start_time
        stored.duration = modification.duration
        stored.extensions = dict(modification.extensions)
        return copy.deepcopy(stored)

    async def delete(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        modification = self.store.modifications.get(modification_id)
        if modification is not None and _in_scope(modification, organization, resource_path):
            del self.store.modifications[modification_id]

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        self.store.modifications = {
            key: modification
            for key, modification in self.store.modifications.items()
            if not (
                modification.recurrence_id == pattern_id
                and _in_scope(modification, organization, resource_path)
            )
        }
