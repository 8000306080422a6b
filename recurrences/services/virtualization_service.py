import asyncio
import datetime
import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Iterable
from typing import Annotated, TypeVar

from dependency_injector.wiring import Provide, inject

from recurrences.recurrence_utils import get_occurrence_generator
from recurrences.services.dataclasses import (
    CalendarEntry,
    ModificationData,
    PatternEntry,
    RecurrencePatternData,
    StandaloneEntry,
    VirtualizedEntry,
)
from recurrences.services.protocols.repositories import (
    CancellationRepository,
    ModificationRepository,
    RecurrencePatternRepository,
    StandaloneInstanceRepository,
)
from recurrences.services.protocols.transaction_context import TransactionContext
from recurrences.validators import (
    validate_query_range,
    validate_tenant_scope,
    validate_types_filter,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _collect(items: AsyncIterator[T]) -> list[T]:
    return [item async for item in items]


class VirtualizationService:
    """
    Answers "which occurrences exist in this window" by expanding recurrence patterns on
    demand and merging them with standalone occurrences.
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
    ) -> None:
        self.pattern_repository = pattern_repository
        self.instance_repository = instance_repository
        self.cancellation_repository = cancellation_repository
        self.modification_repository = modification_repository

    def get_occurrences_in_range(
        self,
        organization: str,
        resource_path: str,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[CalendarEntry]:
        """
        Get every occurrence starting in the window [range_start, range_end).

        Input is validated when this method is called; the returned async iterator then
        reads the overlapping patterns, their cancellations and modifications, and the
        standalone occurrences before yielding anything.

        :param organization: tenant organization.
        :param resource_path: tenant resource path.
        :param range_start: inclusive UTC start of the window.
        :param range_end: exclusive UTC end of the window.
        :param types: only include entries of these types. ``None`` includes all types.
        :param transaction: optional unit of work to read in.
        :return: async iterator of entries ordered by start time.
        """
        validate_tenant_scope(organization, resource_path)
        range_start, range_end = validate_query_range(range_start, range_end)
        types = validate_types_filter(types)

        return self._iter_occurrences(
            organization, resource_path, range_start, range_end, types, transaction
        )

    def get_patterns_in_range(
        self,
        organization: str,
        resource_path: str,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        types: Iterable[str] | None = None,
        transaction: TransactionContext | None = None,
    ) -> AsyncIterator[PatternEntry]:
        """
        Get the recurrence patterns themselves, not their occurrences, whose active span
        overlaps the window [range_start, range_end).
        """
        validate_tenant_scope(organization, resource_path)
        range_start, range_end = validate_query_range(range_start, range_end)
        types = validate_types_filter(types)

        return self._iter_patterns(
            organization, resource_path, range_start, range_end, types, transaction
        )

    async def _iter_patterns(
        self,
        organization: str,
        resource_path: str,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        types: list[str] | None,
        transaction: TransactionContext | None,
    ) -> AsyncIterator[PatternEntry]:
        patterns = await _collect(
            self.pattern_repository.get_in_range(
                organization, resource_path, range_start, range_end, types, transaction=transaction
            )
        )
        for pattern in sorted(patterns, key=lambda p: p.start_time):
            yield PatternEntry.from_pattern(pattern)

    async def _iter_occurrences(
        self,
        organization: str,
        resource_path: str,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        types: list[str] | None,
        transaction: TransactionContext | None,
    ) -> AsyncIterator[CalendarEntry]:
        patterns, instances = await asyncio.gather(
            _collect(
                self.pattern_repository.get_in_range(
                    organization,
                    resource_path,
                    range_start,
                    range_end,
                    types,
                    transaction=transaction,
                )
            ),
            _collect(
                self.instance_repository.get_in_range(
                    organization,
                    resource_path,
                    range_start,
                    range_end,
                    types,
                    transaction=transaction,
                )
            ),
        )

        cancelled_keys: set[tuple[uuid.UUID, datetime.datetime]] = set()
        modifications_by_pattern: dict[uuid.UUID, list[ModificationData]] = defaultdict(list)
        pattern_ids = [pattern.id for pattern in patterns]
        if pattern_ids:
            cancellations, modifications = await asyncio.gather(
                _collect(
                    self.cancellation_repository.get_by_pattern_ids(
                        pattern_ids, organization, resource_path, transaction=transaction
                    )
                ),
                _collect(
                    self.modification_repository.get_in_range(
                        organization,
                        resource_path,
                        pattern_ids,
                        range_start,
                        range_end,
                        transaction=transaction,
                    )
                ),
            )
            cancelled_keys = {
                (cancellation.recurrence_id, cancellation.original_time_utc)
                for cancellation in cancellations
            }
            for modification in modifications:
                modifications_by_pattern[modification.recurrence_id].append(modification)

        entries: list[CalendarEntry] = []
        for pattern in patterns:
            entries.extend(
                self._virtualize_pattern(
                    pattern,
                    range_start,
                    range_end,
                    cancelled_keys,
                    modifications_by_pattern[pattern.id],
                )
            )
        entries.extend(StandaloneEntry.from_instance(instance) for instance in instances)
        entries.sort(key=lambda entry: entry.start_time)

        logger.debug(
            "Virtualized %s entries from %s patterns and %s standalone occurrences",
            len(entries),
            len(patterns),
            len(instances),
        )

        for entry in entries:
            yield entry

    def _virtualize_pattern(
        self,
        pattern: RecurrencePatternData,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
        cancelled_keys: set[tuple[uuid.UUID, datetime.datetime]],
        modifications: list[ModificationData],
    ) -> list[VirtualizedEntry]:
        # first modification stored for an original time wins
        modifications_by_original_time: dict[datetime.datetime, ModificationData] = {}
        for modification in modifications:
            modifications_by_original_time.setdefault(modification.original_time_utc, modification)

        entries = []
        generated_times: set[datetime.datetime] = set()
        generator = get_occurrence_generator(pattern)
        for occurrence_time in generator.generate(pattern, range_start, range_end):
            # two local times can resolve to one instant around DST; the first one wins
            if occurrence_time in generated_times:
                continue
            generated_times.add(occurrence_time)

            modification = modifications_by_original_time.pop(occurrence_time, None)
            if (pattern.id, occurrence_time) in cancelled_keys:
                continue

            if modification is not None:
                entry = VirtualizedEntry.from_modification(pattern, modification)
            else:
                entry = VirtualizedEntry.from_occurrence(pattern, occurrence_time)

            if self._is_within_bounds(entry, pattern, range_start, range_end):
                entries.append(entry)

        # modifications moved into the window from an occurrence generated outside of it
        for original_time, modification in modifications_by_original_time.items():
            if range_start <= original_time < range_end:
                continue
            if (pattern.id, original_time) in cancelled_keys:
                continue

            entry = VirtualizedEntry.from_modification(pattern, modification)
            if self._is_within_bounds(entry, pattern, range_start, range_end):
                entries.append(entry)

        return entries

    @staticmethod
    def _is_within_bounds(
        entry: VirtualizedEntry,
        pattern: RecurrencePatternData,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> bool:
        return (
            range_start <= entry.start_time < range_end
            and entry.start_time <= pattern.recurrence_end_time
        )
