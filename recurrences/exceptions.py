import calendar
import uuid

from django.core.exceptions import ImproperlyConfigured


class RecurrenceServiceNotInjectedError(ImproperlyConfigured):
    pass


class RecurrenceError(Exception):
    """Base exception for recurrence errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


# Input Validation Errors
class EntryValidationError(RecurrenceError):
    """Raised when an input value is malformed. Carries the offending field name."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(message)


class InvalidTimezoneError(EntryValidationError):
    def __init__(self, iana_tz: str, field_name: str = "time_zone"):
        self.iana_tz = iana_tz
        super().__init__(field_name, f"Invalid IANA timezone: {iana_tz}")


class InvalidRecurrenceRuleError(EntryValidationError):
    def __init__(self, message: str, field_name: str = "rule"):
        super().__init__(field_name, message)


class TenantScopeMismatchError(EntryValidationError):
    def __init__(self, field_name: str, child_value: str, parent_value: str):
        super().__init__(
            field_name,
            f"{field_name} mismatch: '{child_value}' must match the parent recurrence "
            f"{field_name} '{parent_value}'.",
        )


# Mutation Errors
class ImmutableFieldError(RecurrenceError):
    def __init__(self, field_name: str, entity_name: str):
        self.field_name = field_name
        self.entity_name = entity_name
        super().__init__(
            f"Cannot modify {field_name}. This field is immutable after the {entity_name} "
            "is created."
        )


class CancelledOccurrenceError(RecurrenceError):
    def __init__(self, recurrence_id: uuid.UUID, original_time_utc):
        self.recurrence_id = recurrence_id
        self.original_time_utc = original_time_utc
        super().__init__(
            f"Occurrence of recurrence '{recurrence_id}' at {original_time_utc.isoformat()} "
            "is cancelled and cannot be modified."
        )


class MonthDayOutOfBoundsError(RecurrenceError):
    """
    Raised when a monthly recurrence targets a day missing from some of the months it covers
    and no strategy to handle those months was provided.
    """

    def __init__(self, day_of_month: int, affected_months: list[int]):
        self.day_of_month = day_of_month
        self.affected_months = affected_months
        month_names = ", ".join(calendar.month_name[month] for month in affected_months)
        super().__init__(
            f"Monthly recurrence day {day_of_month} doesn't exist in all months. "
            f"Affected months: {month_names}. Consider using Skip or Clamp strategy."
        )


class EntryNotFoundError(RecurrenceError):
    def __init__(self, entity_name: str, entity_id: uuid.UUID):
        self.entity_name = entity_name
        self.entity_id = entity_id
        super().__init__(f"{entity_name} with ID '{entity_id}' not found.")


class IndeterminateEntryError(RecurrenceError):
    default_message = (
        "Cannot determine entry type. Entry must be a recurrence pattern, a standalone "
        "occurrence or a virtualized occurrence."
    )


class InvalidRestoreTargetError(RecurrenceError):
    default_message = "Only overridden virtualized occurrences can be restored."


class RecurrencePatternRestoreError(InvalidRestoreTargetError):
    default_message = "Cannot restore a recurrence pattern."


class StandaloneOccurrenceRestoreError(InvalidRestoreTargetError):
    default_message = "Cannot restore a standalone occurrence."


class NoOverrideToRestoreError(InvalidRestoreTargetError):
    default_message = "Occurrence has no override to restore."


# Persistence Errors
class DuplicateEntryError(RecurrenceError):
    def __init__(self, entity_name: str, recurrence_id: uuid.UUID, original_time_utc):
        self.entity_name = entity_name
        self.recurrence_id = recurrence_id
        self.original_time_utc = original_time_utc
        super().__init__(
            f"A {entity_name} for recurrence '{recurrence_id}' at "
            f"{original_time_utc.isoformat()} already exists."
        )
