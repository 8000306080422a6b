"""
Repositories backed by the Django ORM, using its async API.

Django binds transactions to the database connection, so every call made while a
``DjangoTransactionContext`` is open joins its atomic block and the ``transaction``
argument needs no further handling here.
"""

import datetime
import uuid
from collections.abc import AsyncIterator, Iterable
from typing import Self

from django.db import DEFAULT_DB_ALIAS, transaction as db_transaction
from django.utils import timezone

from asgiref.sync import sync_to_async

from recurrences.exceptions import EntryNotFoundError
from recurrences.models import Cancellation, Modification, RecurrencePattern, StandaloneInstance
from recurrences.services.dataclasses import (
    CancellationData,
    ModificationData,
    RecurrencePatternData,
    StandaloneInstanceData,
)
from recurrences.services.protocols.transaction_context import TransactionContext


class DjangoTransactionContext:
    """Wraps ``transaction.atomic`` for async callers."""

    def __init__(self, using: str | None = None):
        self.using = using or DEFAULT_DB_ALIAS
        self._atomic: db_transaction.Atomic | None = None

    async def __aenter__(self) -> Self:
        self._atomic = db_transaction.atomic(using=self.using)
        await sync_to_async(self._atomic.__enter__)()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        atomic, self._atomic = self._atomic, None
        await sync_to_async(atomic.__exit__)(exc_type, exc_value, traceback)


class BaseDjangoRepository:
    def __init__(self, using: str | None = None):
        self.using = using or DEFAULT_DB_ALIAS


class DjangoRecurrencePatternRepository(BaseDjangoRepository):
    def _get_queryset(self, organization: str, resource_path: str):
        return RecurrencePattern.objects.db_manager(self.using).filter_by_tenant(
            organization, resource_path
        )

    async def create(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        instance = RecurrencePattern(
            id=pattern.id,
            organization=pattern.organization,
            resource_path=pattern.resource_path,
            type=pattern.type,
            start_time=pattern.start_time,
            duration=pattern.duration,
            recurrence_end_time=pattern.recurrence_end_time,
            rule=pattern.rule,
            time_zone=pattern.time_zone,
            extensions=dict(pattern.extensions),
            month_day_strategy=pattern.month_day_strategy,
        )
        await instance.asave(force_insert=True, using=self.using)
        return instance.to_data()

    async def get_by_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> RecurrencePatternData | None:
        instance = (
            await self._get_queryset(organization, resource_path).filter(id=pattern_id).afirst()
        )
        return instance.to_data() if instance else None

    async def update(
        self, pattern: RecurrencePatternData, transaction: TransactionContext | None = None
    ) -> RecurrencePatternData:
        updated = (
            await self._get_queryset(pattern.organization, pattern.resource_path)
            .filter(id=pattern.id)
            .aupdate(
                duration=pattern.duration,
                extensions=dict(pattern.extensions),
                modified=timezone.now(),
            )
        )
        if not updated:
            raise EntryNotFoundError("RecurrencePattern", pattern.id)
        return await self.get_by_id(pattern.id, pattern.organization, pattern.resource_path)

    async def delete(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        # cancellations and modifications go with it through ON DELETE CASCADE
        await self._get_queryset(organization, resource_path).filter(id=pattern_id).adelete()

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[RecurrencePatternData]:
        queryset = (
            self._get_queryset(organization, resource_path)
            .filter_by_types(types)
            .filter_overlapping(start, end)
            .order_by("start_time")
        )
        async for instance in queryset:
            yield instance.to_data()


class DjangoStandaloneInstanceRepository(BaseDjangoRepository):
    def _get_queryset(self, organization: str, resource_path: str):
        return StandaloneInstance.objects.db_manager(self.using).filter_by_tenant(
            organization, resource_path
        )

    async def create(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        model_instance = StandaloneInstance(
            id=instance.id,
            organization=instance.organization,
            resource_path=instance.resource_path,
            type=instance.type,
            start_time=instance.start_time,
            duration=instance.duration,
            time_zone=instance.time_zone,
            extensions=dict(instance.extensions),
        )
        await model_instance.asave(force_insert=True, using=self.using)
        return model_instance.to_data()

    async def get_by_id(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> StandaloneInstanceData | None:
        model_instance = (
            await self._get_queryset(organization, resource_path).filter(id=instance_id).afirst()
        )
        return model_instance.to_data() if model_instance else None

    async def update(
        self, instance: StandaloneInstanceData, transaction: TransactionContext | None = None
    ) -> StandaloneInstanceData:
        updated = (
            await self._get_queryset(instance.organization, instance.resource_path)
            .filter(id=instance.id)
            .aupdate(
                start_time=instance.start_time,
                duration=instance.duration,
                end_time=instance.start_time + instance.duration,
                extensions=dict(instance.extensions),
                modified=timezone.now(),
            )
        )
        if not updated:
            raise EntryNotFoundError("StandaloneInstance", instance.id)
        return await self.get_by_id(instance.id, instance.organization, instance.resource_path)

    async def delete(
        self,
        instance_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        await self._get_queryset(organization, resource_path).filter(id=instance_id).adelete()

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        start: datetime.datetime,
        end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[StandaloneInstanceData]:
        queryset = (
            self._get_queryset(organization, resource_path)
            .filter_by_types(types)
            .filter_overlapping(start, end)
            .order_by("start_time")
        )
        async for model_instance in queryset:
            yield model_instance.to_data()


class DjangoCancellationRepository(BaseDjangoRepository):
    def _get_queryset(self, organization: str, resource_path: str):
        return Cancellation.objects.db_manager(self.using).filter_by_tenant(
            organization, resource_path
        )

    async def create(
        self, cancellation: CancellationData, transaction: TransactionContext | None = None
    ) -> CancellationData:
        instance = Cancellation(
            id=cancellation.id,
            organization=cancellation.organization,
            resource_path=cancellation.resource_path,
            pattern_id=cancellation.recurrence_id,
            original_time_utc=cancellation.original_time_utc,
            extensions=dict(cancellation.extensions),
        )
        await instance.asave(force_insert=True, using=self.using)
        return instance.to_data()

    async def get_by_id(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        instance = (
            await self._get_queryset(organization, resource_path)
            .filter(id=cancellation_id)
            .afirst()
        )
        return instance.to_data() if instance else None

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> CancellationData | None:
        instance = (
            await self._get_queryset(organization, resource_path)
            .filter(pattern_id=pattern_id, original_time_utc=original_time_utc)
            .afirst()
        )
        return instance.to_data() if instance else None

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
        queryset = self._get_queryset(organization, resource_path).filter_by_patterns(pattern_ids)
        async for instance in queryset:
            yield instance.to_data()

    async def delete(
        self,
        cancellation_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        await self._get_queryset(organization, resource_path).filter(id=cancellation_id).adelete()

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        queryset = self._get_queryset(organization, resource_path).filter(pattern_id=pattern_id)
        await queryset.adelete()


class DjangoModificationRepository(BaseDjangoRepository):
    def _get_queryset(self, organization: str, resource_path: str):
        return Modification.objects.db_manager(self.using).filter_by_tenant(
            organization, resource_path
        )

    async def create(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        instance = Modification(
            id=modification.id,
            organization=modification.organization,
            resource_path=modification.resource_path,
            pattern_id=modification.recurrence_id,
            original_time_utc=modification.original_time_utc,
            original_duration=modification.original_duration,
            original_extensions=dict(modification.original_extensions),
            start_time=modification.start_time,
            duration=modification.duration,
            extensions=dict(modification.extensions),
        )
        await instance.asave(force_insert=True, using=self.using)
        return instance.to_data()

    async def get_by_id(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        instance = (
            await self._get_queryset(organization, resource_path)
            .filter(id=modification_id)
            .afirst()
        )
        return instance.to_data() if instance else None

    async def get_by_original_time(
        self,
        pattern_id: uuid.UUID,
        original_time_utc: datetime.datetime,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> ModificationData | None:
        instance = (
            await self._get_queryset(organization, resource_path)
            .filter(pattern_id=pattern_id, original_time_utc=original_time_utc)
            .afirst()
        )
        return instance.to_data() if instance else None

    async def get_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        queryset = self._get_queryset(organization, resource_path).filter(pattern_id=pattern_id)
        async for instance in queryset:
            yield instance.to_data()

    async def get_in_range(
        self,
        organization: str,
        resource_path: str,
        pattern_ids: Iterable[uuid.UUID],
        start: datetime.datetime,
        end: datetime.datetime,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[ModificationData]:
        queryset = (
            self._get_queryset(organization, resource_path)
            .filter_by_patterns(pattern_ids)
            .filter_relevant_to_range(start, end)
        )
        async for instance in queryset:
            yield instance.to_data()

    async def update(
        self, modification: ModificationData, transaction: TransactionContext | None = None
    ) -> ModificationData:
        updated = (
            await self._get_queryset(modification.organization, modification.resource_path)
            .filter(id=modification.id)
            .aupdate(
                start_time=modification.start_time,
                duration=modification.duration,
                end_time=modification.start_time + modification.duration,
                extensions=dict(modification.extensions),
                modified=timezone.now(),
            )
        )
        if not updated:
            raise EntryNotFoundError("Modification", modification.id)
        return await self.get_by_id(
            modification.id, modification.organization, modification.resource_path
        )

    async def delete(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        await self._get_queryset(organization, resource_path).filter(id=modification_id).adelete()

    async def delete_by_pattern_id(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None = None,
    ) -> None:
        queryset = self._get_queryset(organization, resource_path).filter(pattern_id=pattern_id)
        await queryset.adelete()
