import datetime
import uuid
import zoneinfo
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import ClassVar

from recurrences.constants import CalendarEntryType, MonthDayStrategy


def _to_local(utc_datetime: datetime.datetime, time_zone: str) -> datetime.datetime:
    return utc_datetime.astimezone(zoneinfo.ZoneInfo(time_zone))


# Persisted records
@dataclass
class RecurrencePatternData:
    id: uuid.UUID  # noqa: A003
    organization: str
    resource_path: str
    type: str  # noqa: A003
    start_time: datetime.datetime
    duration: datetime.timedelta
    recurrence_end_time: datetime.datetime
    rule: str  # RRULE string, always bounded by UNTIL
    time_zone: str  # IANA timezone string
    extensions: dict[str, str] = dataclass_field(default_factory=dict)
    month_day_strategy: MonthDayStrategy | None = None


@dataclass
class StandaloneInstanceData:
    id: uuid.UUID  # noqa: A003
    organization: str
    resource_path: str
    type: str  # noqa: A003
    start_time: datetime.datetime
    duration: datetime.timedelta
    time_zone: str
    extensions: dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def end_time(self) -> datetime.datetime:
        return self.start_time + self.duration


@dataclass
class CancellationData:
    id: uuid.UUID  # noqa: A003
    organization: str
    resource_path: str
    recurrence_id: uuid.UUID
    original_time_utc: datetime.datetime
    extensions: dict[str, str] = dataclass_field(default_factory=dict)


@dataclass
class ModificationData:
    id: uuid.UUID  # noqa: A003
    organization: str
    resource_path: str
    recurrence_id: uuid.UUID
    original_time_utc: datetime.datetime
    original_duration: datetime.timedelta
    start_time: datetime.datetime
    duration: datetime.timedelta
    original_extensions: dict[str, str] = dataclass_field(default_factory=dict)
    extensions: dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def end_time(self) -> datetime.datetime:
        return self.start_time + self.duration


# Creation inputs
@dataclass
class RecurrencePatternInputData:
    organization: str
    resource_path: str
    type: str  # noqa: A003
    start_time: datetime.datetime
    duration: datetime.timedelta
    rule: str
    time_zone: str
    extensions: dict[str, str] | None = None
    # Only consulted when the monthly target day is missing from some covered month
    month_day_strategy: MonthDayStrategy = MonthDayStrategy.THROW
    # Derived from the rule UNTIL when omitted, must match it otherwise
    recurrence_end_time: datetime.datetime | None = None


@dataclass
class StandaloneInstanceInputData:
    organization: str
    resource_path: str
    type: str  # noqa: A003
    start_time: datetime.datetime
    duration: datetime.timedelta
    time_zone: str
    extensions: dict[str, str] | None = None


# Query results
@dataclass
class OriginalDetails:
    """Values a virtualized occurrence had before its override was applied."""

    start_time: datetime.datetime
    duration: datetime.timedelta
    extensions: dict[str, str] = dataclass_field(default_factory=dict)


@dataclass(kw_only=True)
class BaseCalendarEntry:
    entry_type: ClassVar[CalendarEntryType]

    organization: str
    resource_path: str
    type: str  # noqa: A003
    start_time: datetime.datetime
    duration: datetime.timedelta
    time_zone: str
    extensions: dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def end_time(self) -> datetime.datetime:
        return self.start_time + self.duration

    @property
    def start_time_local(self) -> datetime.datetime:
        return _to_local(self.start_time, self.time_zone)

    @property
    def end_time_local(self) -> datetime.datetime:
        return _to_local(self.end_time, self.time_zone)


@dataclass(kw_only=True)
class PatternEntry(BaseCalendarEntry):
    entry_type = CalendarEntryType.RECURRENCE

    id: uuid.UUID  # noqa: A003
    rule: str
    recurrence_end_time: datetime.datetime
    month_day_strategy: MonthDayStrategy | None = None

    @classmethod
    def from_pattern(cls, pattern: RecurrencePatternData) -> "PatternEntry":
        return cls(
            id=pattern.id,
            organization=pattern.organization,
            resource_path=pattern.resource_path,
            type=pattern.type,
            start_time=pattern.start_time,
            duration=pattern.duration,
            time_zone=pattern.time_zone,
            extensions=dict(pattern.extensions),
            rule=pattern.rule,
            recurrence_end_time=pattern.recurrence_end_time,
            month_day_strategy=pattern.month_day_strategy,
        )


@dataclass(kw_only=True)
class StandaloneEntry(BaseCalendarEntry):
    entry_type = CalendarEntryType.STANDALONE

    id: uuid.UUID  # noqa: A003

    @classmethod
    def from_instance(cls, instance: StandaloneInstanceData) -> "StandaloneEntry":
        return cls(
            id=instance.id,
            organization=instance.organization,
            resource_path=instance.resource_path,
            type=instance.type,
            start_time=instance.start_time,
            duration=instance.duration,
            time_zone=instance.time_zone,
            extensions=dict(instance.extensions),
        )


@dataclass(kw_only=True)
class VirtualizedEntry(BaseCalendarEntry):
    """
    An occurrence generated from a recurrence pattern.

    ``original_time_utc`` is the instant the pattern generates for this occurrence and is the
    key used by cancellations and overrides. ``original`` and ``modification_id`` are only set
    while an override is applied.
    """

    entry_type = CalendarEntryType.VIRTUALIZED

    recurrence_id: uuid.UUID
    original_time_utc: datetime.datetime
    original: OriginalDetails | None = None
    modification_id: uuid.UUID | None = None

    @property
    def is_modified(self) -> bool:
        return self.modification_id is not None

    @classmethod
    def from_occurrence(
        cls, pattern: RecurrencePatternData, occurrence_time_utc: datetime.datetime
    ) -> "VirtualizedEntry":
        return cls(
            organization=pattern.organization,
            resource_path=pattern.resource_path,
            type=pattern.type,
            start_time=occurrence_time_utc,
            duration=pattern.duration,
            time_zone=pattern.time_zone,
            extensions=dict(pattern.extensions),
            recurrence_id=pattern.id,
            original_time_utc=occurrence_time_utc,
        )

    @classmethod
    def from_modification(
        cls, pattern: RecurrencePatternData, modification: ModificationData
    ) -> "VirtualizedEntry":
        return cls(
            organization=pattern.organization,
            resource_path=pattern.resource_path,
            type=pattern.type,
            start_time=modification.start_time,
            duration=modification.duration,
            time_zone=pattern.time_zone,
            extensions=dict(modification.extensions),
            recurrence_id=pattern.id,
            original_time_utc=modification.original_time_utc,
            original=OriginalDetails(
                start_time=modification.original_time_utc,
                duration=modification.original_duration,
                extensions=dict(modification.original_extensions),
            ),
            modification_id=modification.id,
        )


CalendarEntry = PatternEntry | StandaloneEntry | VirtualizedEntry
