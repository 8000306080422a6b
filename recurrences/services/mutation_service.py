import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from dependency_injector.wiring import Provide, Provider, inject

from recurrences.exceptions import (
    CancelledOccurrenceError,
    EntryNotFoundError,
    ImmutableFieldError,
    IndeterminateEntryError,
    NoOverrideToRestoreError,
    RecurrencePatternRestoreError,
    StandaloneOccurrenceRestoreError,
)
from recurrences.recurrence_utils import MonthDayStrategyResolver, strip_rule_prefix
from recurrences.services.dataclasses import (
    CalendarEntry,
    CancellationData,
    ModificationData,
    PatternEntry,
    RecurrencePatternData,
    RecurrencePatternInputData,
    StandaloneEntry,
    StandaloneInstanceData,
    StandaloneInstanceInputData,
    VirtualizedEntry,
)
from recurrences.services.protocols.repositories import (
    CancellationRepository,
    ModificationRepository,
    RecurrencePatternRepository,
    StandaloneInstanceRepository,
)
from recurrences.services.protocols.transaction_context import (
    TransactionContext,
    TransactionFactory,
)
from recurrences.validators import (
    validate_duration,
    validate_extensions,
    validate_instance_input,
    validate_pattern_input,
    validate_tenant_scope,
    validate_utc_datetime,
)


logger = logging.getLogger(__name__)

PATTERN_IMMUTABLE_FIELDS = ("type", "start_time", "rule", "time_zone", "recurrence_end_time")
INSTANCE_IMMUTABLE_FIELDS = ("type", "time_zone")
VIRTUALIZED_IMMUTABLE_FIELDS = ("type", "time_zone")


class MutationService:
    """
    Creates, updates, deletes and restores calendar entries.

    Edits on virtualized occurrences never touch the pattern: they are translated into
    modifications (overrides) and cancellations (exceptions) keyed by the occurrence's
    original time. Multi-step edits run in one unit of work: the caller's ``transaction``
    when given, otherwise a new one from ``transaction_factory``.
    """

    @inject
    def __init__(
        self,
        pattern_repository: Annotated[
            "RecurrencePatternRepository | None", Provide["recurrence_pattern_repository"]
        ] = None,
        instance_repository: Annotated[
            "StandaloneInstanceRepository | None", Provide["standalone_instance_repository"]
        ] = None,
        cancellation_repository: Annotated[
            "CancellationRepository | None", Provide["cancellation_repository"]
        ] = None,
        modification_repository: Annotated[
            "ModificationRepository | None", Provide["modification_repository"]
        ] = None,
        transaction_factory: Annotated[
            "TransactionFactory | None", Provider["transaction_context"]
        ] = None,
    ) -> None:
        self.pattern_repository = pattern_repository
        self.instance_repository = instance_repository
        self.cancellation_repository = cancellation_repository
        self.modification_repository = modification_repository
        self.transaction_factory = transaction_factory

    @asynccontextmanager
    async def _unit_of_work(
        self, transaction: TransactionContext | None
    ) -> AsyncIterator[TransactionContext | None]:
        if transaction is not None:
            yield transaction
            return

        if self.transaction_factory is None:
            yield None
            return

        async with self.transaction_factory() as new_transaction:
            yield new_transaction

    # Create
    async def create(
        self,
        data: RecurrencePatternInputData | StandaloneInstanceInputData,
        transaction: TransactionContext | None = None,
    ) -> CalendarEntry:
        if isinstance(data, RecurrencePatternInputData):
            return await self.create_pattern(data, transaction=transaction)
        if isinstance(data, StandaloneInstanceInputData):
            return await self.create_instance(data, transaction=transaction)
        raise IndeterminateEntryError()

    async def create_pattern(
        self,
        data: RecurrencePatternInputData,
        transaction: TransactionContext | None = None,
    ) -> PatternEntry:
        """
        Create a recurrence pattern.

        :param data: the pattern to create. Its rule must be bounded by a UTC UNTIL.
        :param transaction: optional unit of work.
        :raises EntryValidationError: when the input is malformed.
        :raises MonthDayOutOfBoundsError: when a monthly rule targets a day missing from some
            covered month and ``data.month_day_strategy`` is Throw.
        """
        start_time, recurrence_end_time, extensions = validate_pattern_input(data)
        month_day_strategy = MonthDayStrategyResolver.resolve(
            data.rule,
            start_time,
            recurrence_end_time,
            data.time_zone,
            data.month_day_strategy,
        )

        pattern = await self.pattern_repository.create(
            RecurrencePatternData(
                id=uuid.uuid4(),
                organization=data.organization,
                resource_path=data.resource_path,
                type=data.type,
                start_time=start_time,
                duration=data.duration,
                recurrence_end_time=recurrence_end_time,
                rule=strip_rule_prefix(data.rule),
                time_zone=data.time_zone,
                extensions=extensions,
                month_day_strategy=month_day_strategy,
            ),
            transaction=transaction,
        )
        logger.info("Created recurrence pattern %s (%s)", pattern.id, pattern.rule)
        return PatternEntry.from_pattern(pattern)

    async def create_instance(
        self,
        data: StandaloneInstanceInputData,
        transaction: TransactionContext | None = None,
    ) -> StandaloneEntry:
        start_time, extensions = validate_instance_input(data)

        instance = await self.instance_repository.create(
            StandaloneInstanceData(
                id=uuid.uuid4(),
                organization=data.organization,
                resource_path=data.resource_path,
                type=data.type,
                start_time=start_time,
                duration=data.duration,
                time_zone=data.time_zone,
                extensions=extensions,
            ),
            transaction=transaction,
        )
        logger.info("Created standalone occurrence %s", instance.id)
        return StandaloneEntry.from_instance(instance)

    # Update
    async def update(
        self, entry: CalendarEntry, transaction: TransactionContext | None = None
    ) -> CalendarEntry:
        """
        Persist the mutable values of ``entry``.

        Patterns accept new ``duration`` and ``extensions``. Standalone occurrences accept new
        ``start_time``, ``duration`` and ``extensions``. Virtualized occurrences get a
        modification created on first edit and updated afterwards.

        :raises ImmutableFieldError: when an immutable field differs from the stored value.
        :raises CancelledOccurrenceError: when the virtualized occurrence was cancelled.
        :raises EntryNotFoundError: when the referenced record does not exist.
        :raises IndeterminateEntryError: when ``entry`` is not a known entry variant.
        """
        if isinstance(entry, PatternEntry):
            return await self._update_pattern(entry, transaction)
        if isinstance(entry, StandaloneEntry):
            return await self._update_instance(entry, transaction)
        if isinstance(entry, VirtualizedEntry):
            if entry.modification_id is None:
                return await self._create_modification(entry, transaction)
            return await self._update_modification(entry, transaction)
        raise IndeterminateEntryError()

    @staticmethod
    def _check_immutable_fields(entry, stored, field_names, entity_name: str) -> None:
        for field_name in field_names:
            if getattr(entry, field_name) != getattr(stored, field_name):
                raise ImmutableFieldError(field_name, entity_name)

    async def _update_pattern(
        self, entry: PatternEntry, transaction: TransactionContext | None
    ) -> PatternEntry:
        validate_tenant_scope(entry.organization, entry.resource_path)
        validate_duration(entry.duration)
        extensions = validate_extensions(entry.extensions)

        pattern = await self.pattern_repository.get_by_id(
            entry.id, entry.organization, entry.resource_path, transaction=transaction
        )
        if pattern is None:
            raise EntryNotFoundError("RecurrencePattern", entry.id)
        self._check_immutable_fields(entry, pattern, PATTERN_IMMUTABLE_FIELDS, "recurrence")

        pattern.duration = entry.duration
        pattern.extensions = extensions
        pattern = await self.pattern_repository.update(pattern, transaction=transaction)
        logger.info("Updated recurrence pattern %s", pattern.id)
        return PatternEntry.from_pattern(pattern)

    async def _update_instance(
        self, entry: StandaloneEntry, transaction: TransactionContext | None
    ) -> StandaloneEntry:
        validate_tenant_scope(entry.organization, entry.resource_path)
        start_time = validate_utc_datetime(entry.start_time, "start_time")
        validate_duration(entry.duration)
        extensions = validate_extensions(entry.extensions)

        instance = await self.instance_repository.get_by_id(
            entry.id, entry.organization, entry.resource_path, transaction=transaction
        )
        if instance is None:
            raise EntryNotFoundError("StandaloneInstance", entry.id)
        self._check_immutable_fields(entry, instance, INSTANCE_IMMUTABLE_FIELDS, "occurrence")

        instance.start_time = start_time
        instance.duration = entry.duration
        instance.extensions = extensions
        instance = await self.instance_repository.update(instance, transaction=transaction)
        logger.info("Updated standalone occurrence %s", instance.id)
        return StandaloneEntry.from_instance(instance)

    async def _get_pattern_or_raise(
        self,
        pattern_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None,
    ) -> RecurrencePatternData:
        pattern = await self.pattern_repository.get_by_id(
            pattern_id, organization, resource_path, transaction=transaction
        )
        if pattern is None:
            raise EntryNotFoundError("RecurrencePattern", pattern_id)
        return pattern

    async def _get_modification_or_raise(
        self,
        modification_id: uuid.UUID,
        organization: str,
        resource_path: str,
        transaction: TransactionContext | None,
    ) -> ModificationData:
        modification = await self.modification_repository.get_by_id(
            modification_id, organization, resource_path, transaction=transaction
        )
        if modification is None:
            raise EntryNotFoundError("Modification", modification_id)
        return modification

    async def _create_modification(
        self, entry: VirtualizedEntry, transaction: TransactionContext | None
    ) -> VirtualizedEntry:
        validate_tenant_scope(entry.organization, entry.resource_path)
        original_time_utc = validate_utc_datetime(entry.original_time_utc, "original_time_utc")
        start_time = validate_utc_datetime(entry.start_time, "start_time")
        validate_duration(entry.duration)
        extensions = validate_extensions(entry.extensions)

        async with self._unit_of_work(transaction) as unit_of_work:
            pattern = await self._get_pattern_or_raise(
                entry.recurrence_id, entry.organization, entry.resource_path, unit_of_work
            )
            self._check_immutable_fields(
                entry, pattern, VIRTUALIZED_IMMUTABLE_FIELDS, "virtualized occurrence"
            )
            cancellation = await self.cancellation_repository.get_by_original_time(
                pattern.id,
                original_time_utc,
                pattern.organization,
                pattern.resource_path,
                transaction=unit_of_work,
            )
            if cancellation is not None:
                raise CancelledOccurrenceError(pattern.id, original_time_utc)

            if entry.original is not None:
                original_duration = entry.original.duration
                original_extensions = dict(entry.original.extensions)
            else:
                original_duration = pattern.duration
                original_extensions = dict(pattern.extensions)

            modification = await self.modification_repository.create(
                ModificationData(
                    id=uuid.uuid4(),
                    organization=pattern.organization,
                    resource_path=pattern.resource_path,
                    recurrence_id=pattern.id,
                    original_time_utc=original_time_utc,
                    original_duration=original_duration,
                    start_time=start_time,
                    duration=entry.duration,
                    original_extensions=original_extensions,
                    extensions=extensions,
                ),
                transaction=unit_of_work,
            )

        logger.info(
            "Created modification %s for recurrence %s at %s",
            modification.id,
            pattern.id,
            original_time_utc.isoformat(),
        )
        return VirtualizedEntry.from_modification(pattern, modification)

    async def _update_modification(
        self, entry: VirtualizedEntry, transaction: TransactionContext | None
    ) -> VirtualizedEntry:
        validate_tenant_scope(entry.organization, entry.resource_path)
        start_time = validate_utc_datetime(entry.start_time, "start_time")
        validate_duration(entry.duration)
        extensions = validate_extensions(entry.extensions)

        async with self._unit_of_work(transaction) as unit_of_work:
            modification = await self._get_modification_or_raise(
                entry.modification_id, entry.organization, entry.resource_path, unit_of_work
            )
            pattern = await self._get_pattern_or_raise(
                modification.recurrence_id, entry.organization, entry.resource_path, unit_of_work
            )
            self._check_immutable_fields(
                entry, pattern, VIRTUALIZED_IMMUTABLE_FIELDS, "virtualized occurrence"
            )
            self._check_immutable_fields(
                entry, modification, ("original_time_utc",), "modification"
            )

            modification.start_time = start_time
            modification.duration = entry.duration
            modification.extensions = extensions
            modification = await self.modification_repository.update(
                modification, transaction=unit_of_work
            )

        logger.info("Updated modification %s", modification.id)
        return VirtualizedEntry.from_modification(pattern, modification)

    # Delete
    async def delete(
        self, entry: CalendarEntry, transaction: TransactionContext | None = None
    ) -> None:
        """
        Delete ``entry``.

        Deleting a pattern also deletes its cancellations and modifications. Deleting a
        virtualized occurrence cancels it at its original time, dropping its modification
        first when it has one.
        """
        if isinstance(entry, PatternEntry):
            validate_tenant_scope(entry.organization, entry.resource_path)
            await self.pattern_repository.delete(
                entry.id, entry.organization, entry.resource_path, transaction=transaction
            )
            logger.info("Deleted recurrence pattern %s", entry.id)
            return

        if isinstance(entry, StandaloneEntry):
            validate_tenant_scope(entry.organization, entry.resource_path)
            await self.instance_repository.delete(
                entry.id, entry.organization, entry.resource_path, transaction=transaction
            )
            logger.info("Deleted standalone occurrence %s", entry.id)
            return

        if isinstance(entry, VirtualizedEntry):
            if entry.modification_id is None:
                await self._cancel_occurrence(entry, transaction)
            else:
                await self._cancel_modified_occurrence(entry, transaction)
            return

        raise IndeterminateEntryError()

    async def _cancel_occurrence(
        self, entry: VirtualizedEntry, transaction: TransactionContext | None
    ) -> CancellationData:
        validate_tenant_scope(entry.organization, entry.resource_path)
        original_time_utc = validate_utc_datetime(entry.original_time_utc, "original_time_utc")

        async with self._unit_of_work(transaction) as unit_of_work:
            pattern = await self._get_pattern_or_raise(
                entry.recurrence_id, entry.organization, entry.resource_path, unit_of_work
            )
            # the entry may predate a modification made at the same original time
            modification = await self.modification_repository.get_by_original_time(
                pattern.id,
                original_time_utc,
                pattern.organization,
                pattern.resource_path,
                transaction=unit_of_work,
            )
            if modification is not None:
                await self.modification_repository.delete(
                    modification.id,
                    modification.organization,
                    modification.resource_path,
                    transaction=unit_of_work,
                )
                logger.info("Deleted modification %s", modification.id)

            cancellation = await self.cancellation_repository.create(
                CancellationData(
                    id=uuid.uuid4(),
                    organization=pattern.organization,
                    resource_path=pattern.resource_path,
                    recurrence_id=pattern.id,
                    original_time_utc=original_time_utc,
                ),
                transaction=unit_of_work,
            )

        logger.info(
            "Cancelled occurrence of recurrence %s at %s",
            pattern.id,
            original_time_utc.isoformat(),
        )
        return cancellation

    async def _cancel_modified_occurrence(
        self, entry: VirtualizedEntry, transaction: TransactionContext | None
    ) -> CancellationData:
        validate_tenant_scope(entry.organization, entry.resource_path)

        async with self._unit_of_work(transaction) as unit_of_work:
            modification = await self._get_modification_or_raise(
                entry.modification_id, entry.organization, entry.resource_path, unit_of_work
            )
            await self.modification_repository.delete(
                modification.id,
                modification.organization,
                modification.resource_path,
                transaction=unit_of_work,
            )
            # keyed at the time the pattern generated, not where the modification moved it
            cancellation = await self.cancellation_repository.create(
                CancellationData(
                    id=uuid.uuid4(),
                    organization=modification.organization,
                    resource_path=modification.resource_path,
                    recurrence_id=modification.recurrence_id,
                    original_time_utc=modification.original_time_utc,
                ),
                transaction=unit_of_work,
            )

        logger.info(
            "Deleted modification %s and cancelled occurrence of recurrence %s at %s",
            modification.id,
            modification.recurrence_id,
            modification.original_time_utc.isoformat(),
        )
        return cancellation

    # Restore
    async def restore(
        self, entry: CalendarEntry, transaction: TransactionContext | None = None
    ) -> None:
        """
        Drop the modification applied to a virtualized occurrence, so the pattern generates
        it again unchanged.

        :raises InvalidRestoreTargetError: when ``entry`` is a pattern, a standalone
            occurrence or a virtualized occurrence without a modification.
        :raises EntryNotFoundError: when the modification no longer exists.
        """
        if isinstance(entry, PatternEntry):
            raise RecurrencePatternRestoreError()
        if isinstance(entry, StandaloneEntry):
            raise StandaloneOccurrenceRestoreError()
        if not isinstance(entry, VirtualizedEntry):
            raise IndeterminateEntryError()
        if entry.modification_id is None:
            raise NoOverrideToRestoreError()

        validate_tenant_scope(entry.organization, entry.resource_path)

        async with self._unit_of_work(transaction) as unit_of_work:
            modification = await self._get_modification_or_raise(
                entry.modification_id, entry.organization, entry.resource_path, unit_of_work
            )
            await self.modification_repository.delete(
                modification.id,
                modification.organization,
                modification.resource_path,
                transaction=unit_of_work,
            )

        logger.info(
            "Restored occurrence of recurrence %s at %s",
            modification.recurrence_id,
            modification.original_time_utc.isoformat(),
        )
