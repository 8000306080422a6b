import dataclasses
import datetime
import uuid

import pytest

from recurrences.constants import MonthDayStrategy
from recurrences.exceptions import (
    CancelledOccurrenceError,
    DuplicateEntryError,
    EntryNotFoundError,
    EntryValidationError,
    ImmutableFieldError,
    IndeterminateEntryError,
    InvalidTimezoneError,
    MonthDayOutOfBoundsError,
    NoOverrideToRestoreError,
    RecurrencePatternRestoreError,
    StandaloneOccurrenceRestoreError,
)
from recurrences.services.dataclasses import (
    CancellationData,
    PatternEntry,
    RecurrencePatternInputData,
    StandaloneEntry,
    StandaloneInstanceInputData,
)
from recurrences.services.repositories.in_memory import InMemoryTransactionContext


pytestmark = pytest.mark.asyncio

ORGANIZATION = "org-1"
RESOURCE_PATH = "calendars/room-a"


def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


def _pattern_input(**kwargs):
    values = {
        "organization": ORGANIZATION,
        "resource_path": RESOURCE_PATH,
        "type": "meeting",
        "start_time": _dt(2025, 1, 1),
        "duration": datetime.timedelta(hours=1),
        "rule": "FREQ=DAILY;UNTIL=20250105T090000Z",
        "time_zone": "UTC",
        "extensions": {"color": "blue"},
    }
    values.update(kwargs)
    return RecurrencePatternInputData(**values)


def _instance_input(**kwargs):
    values = {
        "organization": ORGANIZATION,
        "resource_path": RESOURCE_PATH,
        "type": "task",
        "start_time": _dt(2025, 1, 2, 12),
        "duration": datetime.timedelta(minutes=30),
        "time_zone": "UTC",
    }
    values.update(kwargs)
    return StandaloneInstanceInputData(**values)


async def _get_occurrences(virtualization_service, range_start, range_end):
    return [
        entry
        async for entry in virtualization_service.get_occurrences_in_range(
            ORGANIZATION, RESOURCE_PATH, range_start, range_end
        )
    ]


async def _get_occurrence(virtualization_service, occurrence_time):
    entries = await _get_occurrences(
        virtualization_service, occurrence_time, occurrence_time + datetime.timedelta(seconds=1)
    )
    assert len(entries) == 1
    return entries[0]


class TestCreate:
    async def test_create_pattern(self, mutation_service, store):
        entry = await mutation_service.create(
            _pattern_input(rule="RRULE:FREQ=DAILY;UNTIL=20250105T090000Z")
        )

        assert isinstance(entry, PatternEntry)
        assert entry.rule == "FREQ=DAILY;UNTIL=20250105T090000Z"
        assert entry.recurrence_end_time == _dt(2025, 1, 5)
        assert entry.month_day_strategy is None
        assert entry.extensions == {"color": "blue"}
        assert store.patterns[entry.id].start_time == _dt(2025, 1, 1)

    async def test_create_pattern_truncates_start_time_to_seconds(self, mutation_service):
        entry = await mutation_service.create_pattern(
            _pattern_input(start_time=_dt(2025, 1, 1).replace(microsecond=999999))
        )

        assert entry.start_time == _dt(2025, 1, 1)

    async def test_create_instance(self, mutation_service, store):
        entry = await mutation_service.create(_instance_input())

        assert isinstance(entry, StandaloneEntry)
        assert entry.end_time == _dt(2025, 1, 2, 12, 30)
        assert entry.extensions == {}
        assert entry.id in store.instances

    async def test_create_unknown_input(self, mutation_service):
        with pytest.raises(IndeterminateEntryError):
            await mutation_service.create(object())

    async def test_monthly_day_missing_from_some_months_raises(self, mutation_service, store):
        with pytest.raises(MonthDayOutOfBoundsError) as exc_info:
            await mutation_service.create_pattern(
                _pattern_input(
                    start_time=_dt(2025, 1, 31),
                    rule="FREQ=MONTHLY;BYMONTHDAY=31;UNTIL=20250630T235959Z",
                )
            )

        assert exc_info.value.affected_months == [2, 4, 6]
        assert store.patterns == {}

    @pytest.mark.parametrize("strategy", [MonthDayStrategy.SKIP, MonthDayStrategy.CLAMP])
    async def test_monthly_strategy_is_stored(self, mutation_service, store, strategy):
        entry = await mutation_service.create_pattern(
            _pattern_input(
                start_time=_dt(2025, 1, 31),
                rule="FREQ=MONTHLY;BYMONTHDAY=31;UNTIL=20250630T235959Z",
                month_day_strategy=strategy,
            )
        )

        assert entry.month_day_strategy == strategy
        assert store.patterns[entry.id].month_day_strategy == strategy

    @pytest.mark.parametrize("strategy", [MonthDayStrategy.THROW, MonthDayStrategy.CLAMP])
    async def test_last_weekday_rule_from_the_31st(
        self, mutation_service, virtualization_service, strategy
    ):
        entry = await mutation_service.create_pattern(
            _pattern_input(
                start_time=_dt(2025, 1, 31),
                rule="FREQ=MONTHLY;BYDAY=-1FR;UNTIL=20250630T090000Z",
                month_day_strategy=strategy,
            )
        )

        entries = await _get_occurrences(virtualization_service, _dt(2025, 1, 1), _dt(2025, 7, 1))

        assert entry.month_day_strategy is None
        assert [e.start_time for e in entries] == [
            _dt(2025, 1, 31),
            _dt(2025, 2, 28),
            _dt(2025, 3, 28),
            _dt(2025, 4, 25),
            _dt(2025, 5, 30),
            _dt(2025, 6, 27),
        ]

    async def test_validation_errors_persist_nothing(self, mutation_service, store):
        with pytest.raises(InvalidTimezoneError):
            await mutation_service.create_pattern(_pattern_input(time_zone="Nowhere/Land"))
        with pytest.raises(EntryValidationError, match="COUNT is not supported"):
            await mutation_service.create_pattern(_pattern_input(rule="FREQ=DAILY;COUNT=3"))
        with pytest.raises(EntryValidationError, match="Duration must be positive"):
            await mutation_service.create_instance(
                _instance_input(duration=datetime.timedelta(0))
            )

        assert store.patterns == {}
        assert store.instances == {}


class TestUpdatePattern:
    async def test_duration_and_extensions_are_updated(self, mutation_service, store):
        entry = await mutation_service.create_pattern(_pattern_input())

        updated = await mutation_service.update(
            dataclasses.replace(
                entry, duration=datetime.timedelta(minutes=45), extensions={"color": "red"}
            )
        )

        assert updated.duration == datetime.timedelta(minutes=45)
        assert updated.extensions == {"color": "red"}
        stored = store.patterns[entry.id]
        assert stored.duration == datetime.timedelta(minutes=45)
        assert stored.rule == entry.rule
        assert stored.start_time == entry.start_time

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("type", "standup"),
            ("start_time", _dt(2025, 1, 2)),
            ("rule", "FREQ=WEEKLY;UNTIL=20250105T090000Z"),
            ("time_zone", "America/New_York"),
            ("recurrence_end_time", _dt(2025, 2, 1)),
        ],
    )
    async def test_immutable_fields(self, mutation_service, store, field_name, value):
        entry = await mutation_service.create_pattern(_pattern_input())

        with pytest.raises(ImmutableFieldError, match=f"Cannot modify {field_name}") as exc_info:
            await mutation_service.update(
                dataclasses.replace(
                    entry, duration=datetime.timedelta(hours=3), **{field_name: value}
                )
            )

        assert exc_info.value.entity_name == "recurrence"
        assert store.patterns[entry.id].duration == datetime.timedelta(hours=1)

    async def test_missing_pattern(self, mutation_service):
        entry = await mutation_service.create_pattern(_pattern_input())

        with pytest.raises(EntryNotFoundError):
            await mutation_service.update(dataclasses.replace(entry, id=uuid.uuid4()))

    async def test_other_tenant_cannot_update(self, mutation_service):
        entry = await mutation_service.create_pattern(_pattern_input())

        with pytest.raises(EntryNotFoundError):
            await mutation_service.update(dataclasses.replace(entry, organization="org-2"))


class TestUpdateInstance:
    async def test_time_and_duration_are_updated(self, mutation_service, store):
        entry = await mutation_service.create_instance(_instance_input())

        updated = await mutation_service.update(
            dataclasses.replace(
                entry, start_time=_dt(2025, 1, 3, 8), duration=datetime.timedelta(hours=2)
            )
        )

        assert updated.start_time == _dt(2025, 1, 3, 8)
        assert updated.end_time == _dt(2025, 1, 3, 10)
        assert store.instances[entry.id].end_time == _dt(2025, 1, 3, 10)

    async def test_type_is_immutable(self, mutation_service):
        entry = await mutation_service.create_instance(_instance_input())

        with pytest.raises(ImmutableFieldError, match="Cannot modify type") as exc_info:
            await mutation_service.update(dataclasses.replace(entry, type="meeting"))

        assert exc_info.value.entity_name == "occurrence"

    async def test_missing_instance(self, mutation_service):
        entry = await mutation_service.create_instance(_instance_input())

        with pytest.raises(EntryNotFoundError):
            await mutation_service.update(dataclasses.replace(entry, id=uuid.uuid4()))


class TestUpdateVirtualizedOccurrence:
    async def test_first_update_creates_modification(
        self, mutation_service, virtualization_service, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        updated = await mutation_service.update(
            dataclasses.replace(
                occurrence,
                start_time=_dt(2025, 1, 3, 10),
                duration=datetime.timedelta(minutes=30),
                extensions={"color": "green"},
            )
        )

        assert updated.is_modified
        assert updated.start_time == _dt(2025, 1, 3, 10)
        assert updated.original.start_time == _dt(2025, 1, 3)
        assert updated.original.duration == datetime.timedelta(hours=1)
        assert updated.original.extensions == {"color": "blue"}

        [modification] = store.modifications.values()
        assert modification.id == updated.modification_id
        assert modification.recurrence_id == pattern.id
        assert modification.original_time_utc == _dt(2025, 1, 3)
        assert modification.extensions == {"color": "green"}
        # the pattern itself is untouched
        assert store.patterns[pattern.id].duration == datetime.timedelta(hours=1)

    async def test_second_update_changes_existing_modification(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        modified = await mutation_service.update(
            dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
        )

        updated = await mutation_service.update(
            dataclasses.replace(modified, duration=datetime.timedelta(hours=3))
        )

        assert updated.modification_id == modified.modification_id
        assert updated.original.duration == datetime.timedelta(hours=1)
        [modification] = store.modifications.values()
        assert modification.duration == datetime.timedelta(hours=3)
        assert modification.end_time == _dt(2025, 1, 3, 12)

    async def test_type_is_immutable(self, mutation_service, virtualization_service, store):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        with pytest.raises(ImmutableFieldError) as exc_info:
            await mutation_service.update(dataclasses.replace(occurrence, type="standup"))

        assert exc_info.value.entity_name == "virtualized occurrence"
        assert store.modifications == {}

    async def test_original_time_is_immutable_once_modified(
        self, mutation_service, virtualization_service
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        modified = await mutation_service.update(
            dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
        )

        with pytest.raises(ImmutableFieldError, match="Cannot modify original_time_utc"):
            await mutation_service.update(
                dataclasses.replace(modified, original_time_utc=_dt(2025, 1, 4))
            )

    async def test_deleted_pattern(self, mutation_service, virtualization_service):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        await mutation_service.delete(pattern)

        with pytest.raises(EntryNotFoundError):
            await mutation_service.update(
                dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
            )

    async def test_cancelled_occurrence_cannot_be_modified(
        self, mutation_service, virtualization_service, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        await mutation_service.delete(occurrence)

        with pytest.raises(CancelledOccurrenceError) as exc_info:
            await mutation_service.update(
                dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
            )

        assert exc_info.value.recurrence_id == pattern.id
        assert exc_info.value.original_time_utc == _dt(2025, 1, 3)
        assert len(store.cancellations) == 1
        assert store.modifications == {}

    async def test_naive_start_time_is_rejected(self, mutation_service, virtualization_service):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        with pytest.raises(EntryValidationError) as exc_info:
            await mutation_service.update(
                dataclasses.replace(occurrence, start_time=datetime.datetime(2025, 1, 3, 10))
            )

        assert exc_info.value.field_name == "start_time"


class TestDelete:
    async def test_delete_pattern_deletes_its_exceptions_and_overrides(
        self, mutation_service, virtualization_service, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        entries = await _get_occurrences(virtualization_service, _dt(2025, 1, 1), _dt(2025, 1, 6))
        await mutation_service.delete(entries[0])
        await mutation_service.update(
            dataclasses.replace(entries[1], duration=datetime.timedelta(hours=2))
        )

        await mutation_service.delete(pattern)

        assert store.patterns == {}
        assert store.cancellations == {}
        assert store.modifications == {}

    async def test_delete_instance(self, mutation_service, store):
        entry = await mutation_service.create_instance(_instance_input())

        await mutation_service.delete(entry)

        assert store.instances == {}

    async def test_delete_occurrence_creates_cancellation(
        self, mutation_service, virtualization_service, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        await mutation_service.delete(occurrence)

        [cancellation] = store.cancellations.values()
        assert cancellation.recurrence_id == pattern.id
        assert cancellation.original_time_utc == _dt(2025, 1, 3)
        assert cancellation.organization == ORGANIZATION
        assert cancellation.resource_path == RESOURCE_PATH

    async def test_delete_moved_occurrence_cancels_original_time(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        moved = await mutation_service.update(
            dataclasses.replace(occurrence, start_time=_dt(2025, 1, 3, 15))
        )

        await mutation_service.delete(moved)

        assert store.modifications == {}
        [cancellation] = store.cancellations.values()
        assert cancellation.original_time_utc == _dt(2025, 1, 3)

        entries = await _get_occurrences(virtualization_service, _dt(2025, 1, 1), _dt(2025, 1, 6))
        assert _dt(2025, 1, 3) not in [entry.start_time for entry in entries]
        assert _dt(2025, 1, 3, 15) not in [entry.start_time for entry in entries]

    async def test_delete_stale_occurrence_drops_its_modification(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 2))
        await mutation_service.update(
            dataclasses.replace(occurrence, start_time=_dt(2025, 1, 2, 15))
        )

        # read before the modification existed
        await mutation_service.delete(occurrence)

        assert store.modifications == {}
        [cancellation] = store.cancellations.values()
        assert cancellation.original_time_utc == _dt(2025, 1, 2)
        entries = await _get_occurrences(virtualization_service, _dt(2025, 1, 1), _dt(2025, 1, 6))
        assert _dt(2025, 1, 2, 15) not in [entry.start_time for entry in entries]

    async def test_delete_occurrence_of_missing_pattern(
        self, mutation_service, virtualization_service, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        await mutation_service.delete(pattern)

        with pytest.raises(EntryNotFoundError):
            await mutation_service.delete(occurrence)

        assert store.cancellations == {}

    async def test_delete_unknown_entry(self, mutation_service):
        with pytest.raises(IndeterminateEntryError):
            await mutation_service.delete("not an entry")


class TestRestore:
    async def test_restore_pattern_raises(self, mutation_service, store):
        entry = await mutation_service.create_pattern(_pattern_input())

        with pytest.raises(RecurrencePatternRestoreError, match="recurrence pattern"):
            await mutation_service.restore(entry)

        assert list(store.patterns) == [entry.id]

    async def test_restore_instance_raises(self, mutation_service, store):
        entry = await mutation_service.create_instance(_instance_input())

        with pytest.raises(StandaloneOccurrenceRestoreError, match="standalone occurrence"):
            await mutation_service.restore(entry)

        assert list(store.instances) == [entry.id]

    async def test_restore_unmodified_occurrence_raises(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        with pytest.raises(NoOverrideToRestoreError, match="no override to restore"):
            await mutation_service.restore(occurrence)

        assert store.modifications == {}
        assert store.cancellations == {}

    async def test_restore_brings_back_generated_occurrence(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        original = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        modified = await mutation_service.update(
            dataclasses.replace(
                original,
                start_time=_dt(2025, 1, 3, 15),
                duration=datetime.timedelta(hours=2),
                extensions={"color": "red"},
            )
        )

        await mutation_service.restore(modified)

        assert store.modifications == {}
        restored = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        assert restored == original

    async def test_restore_missing_modification(
        self, mutation_service, virtualization_service
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        modified = await mutation_service.update(
            dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
        )
        await mutation_service.restore(modified)

        with pytest.raises(EntryNotFoundError):
            await mutation_service.restore(modified)


class TestUnitOfWork:
    async def test_failed_compound_delete_is_rolled_back(
        self, mutation_service, virtualization_service, cancellation_repository, store
    ):
        pattern = await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))
        modified = await mutation_service.update(
            dataclasses.replace(occurrence, duration=datetime.timedelta(hours=2))
        )
        # a cancellation already sitting at the key makes the second step fail
        await cancellation_repository.create(
            CancellationData(
                id=uuid.uuid4(),
                organization=ORGANIZATION,
                resource_path=RESOURCE_PATH,
                recurrence_id=pattern.id,
                original_time_utc=_dt(2025, 1, 3),
            )
        )

        with pytest.raises(DuplicateEntryError):
            await mutation_service.delete(modified)

        [modification] = store.modifications.values()
        assert modification.id == modified.modification_id
        assert len(store.cancellations) == 1

    async def test_opens_own_transaction(
        self, mutation_service, virtualization_service, opened_transactions
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        await mutation_service.delete(occurrence)

        assert len(opened_transactions) == 1

    async def test_uses_caller_transaction(
        self, mutation_service, virtualization_service, opened_transactions, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        async with InMemoryTransactionContext(store) as transaction:
            await mutation_service.delete(occurrence, transaction=transaction)

        assert opened_transactions == []
        assert len(store.cancellations) == 1

    async def test_caller_transaction_rolls_back_everything(
        self, mutation_service, virtualization_service, store
    ):
        await mutation_service.create_pattern(_pattern_input())
        first = await _get_occurrence(virtualization_service, _dt(2025, 1, 2))
        second = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        with pytest.raises(DuplicateEntryError):
            async with InMemoryTransactionContext(store) as transaction:
                await mutation_service.delete(first, transaction=transaction)
                await mutation_service.delete(second, transaction=transaction)
                await mutation_service.delete(second, transaction=transaction)

        assert store.cancellations == {}

    async def test_works_without_transaction_factory(
        self,
        pattern_repository,
        instance_repository,
        cancellation_repository,
        modification_repository,
        virtualization_service,
        store,
    ):
        from recurrences.services.mutation_service import MutationService

        mutation_service = MutationService(
            pattern_repository=pattern_repository,
            instance_repository=instance_repository,
            cancellation_repository=cancellation_repository,
            modification_repository=modification_repository,
            transaction_factory=None,
        )
        await mutation_service.create_pattern(_pattern_input())
        occurrence = await _get_occurrence(virtualization_service, _dt(2025, 1, 3))

        await mutation_service.delete(occurrence)

        assert len(store.cancellations) == 1
