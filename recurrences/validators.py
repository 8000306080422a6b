"""Input validation for recurrence patterns, standalone occurrences and query windows.

Every function raises an ``EntryValidationError`` (or one of its subclasses) naming the
offending field. Validation always runs before any persistence call.
"""

import datetime
import re
import zoneinfo
from collections.abc import Iterable, Mapping

from dateutil.rrule import rrulestr

from common.constants import MAX_ORGANIZATION_LENGTH, MAX_RESOURCE_PATH_LENGTH
from recurrences.constants import (
    MAX_EXTENSION_KEY_LENGTH,
    MAX_EXTENSION_VALUE_LENGTH,
    MAX_RULE_LENGTH,
    MAX_TIME_ZONE_LENGTH,
    MAX_TYPE_LENGTH,
    MIN_EXTENSION_KEY_LENGTH,
    MIN_RULE_LENGTH,
    MIN_TIME_ZONE_LENGTH,
    MIN_TYPE_LENGTH,
    RULE_UNTIL_FORMAT,
)
from recurrences.exceptions import (
    EntryValidationError,
    InvalidRecurrenceRuleError,
    InvalidTimezoneError,
)
from recurrences.recurrence_utils import strip_rule_prefix
from recurrences.services.dataclasses import (
    RecurrencePatternInputData,
    StandaloneInstanceInputData,
)


COUNT_REGEX = re.compile(r"(?:^|;)\s*COUNT\s*=", re.IGNORECASE)
UNTIL_REGEX = re.compile(r"(?:^|;)\s*UNTIL\s*=\s*(?P<until>[^;]+)", re.IGNORECASE)
FREQ_REGEX = re.compile(r"(?:^|;)\s*FREQ\s*=", re.IGNORECASE)
UTC_UNTIL_REGEX = re.compile(r"^\d{8}T\d{6}Z$")

END_TIME_TOLERANCE = datetime.timedelta(seconds=1)


def _validate_length(
    value: str | None,
    field_name: str,
    max_length: int,
    min_length: int = 0,
) -> str:
    if value is None or not isinstance(value, str):
        raise EntryValidationError(field_name, f"{field_name} cannot be null.")
    if len(value) < min_length:
        raise EntryValidationError(
            field_name, f"{field_name} must be at least {min_length} character(s)."
        )
    if len(value) > max_length:
        raise EntryValidationError(
            field_name,
            f"{field_name} must not exceed {max_length} characters. "
            f"Actual length: {len(value)}.",
        )
    return value


def validate_tenant_scope(organization: str, resource_path: str) -> None:
    _validate_length(organization, "organization", MAX_ORGANIZATION_LENGTH)
    _validate_length(resource_path, "resource_path", MAX_RESOURCE_PATH_LENGTH)


def validate_type(type_: str) -> str:
    return _validate_length(type_, "type", MAX_TYPE_LENGTH, MIN_TYPE_LENGTH)


def validate_time_zone(time_zone: str, field_name: str = "time_zone") -> zoneinfo.ZoneInfo:
    _validate_length(time_zone, field_name, MAX_TIME_ZONE_LENGTH, MIN_TIME_ZONE_LENGTH)
    try:
        return zoneinfo.ZoneInfo(time_zone)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(time_zone, field_name) from e


def validate_utc_datetime(value: datetime.datetime, field_name: str) -> datetime.datetime:
    """
    Ensure ``value`` is a UTC instant and normalize its tzinfo to ``datetime.UTC``.

    Naive datetimes and datetimes carrying a non-zero offset are rejected.
    """
    if not isinstance(value, datetime.datetime):
        raise EntryValidationError(field_name, f"{field_name} must be a datetime.")
    if value.tzinfo is None or value.utcoffset() is None:
        raise EntryValidationError(
            field_name, f"{field_name} must be timezone-aware and in UTC. Found a naive datetime."
        )
    if value.utcoffset() != datetime.timedelta(0):
        raise EntryValidationError(
            field_name, f"{field_name} must be in UTC. Found offset {value.utcoffset()}."
        )
    return value.astimezone(datetime.UTC)


def validate_duration(duration: datetime.timedelta, field_name: str = "duration") -> None:
    if not isinstance(duration, datetime.timedelta):
        raise EntryValidationError(field_name, f"{field_name} must be a timedelta.")
    if duration <= datetime.timedelta(0):
        raise EntryValidationError(field_name, "Duration must be positive.")


def validate_extensions(
    extensions: Mapping[str, str] | None, field_name: str = "extensions"
) -> dict[str, str]:
    if extensions is None:
        return {}

    for key, value in extensions.items():
        if not isinstance(key, str):
            raise EntryValidationError(field_name, "Extension keys must be strings.")
        if len(key) < MIN_EXTENSION_KEY_LENGTH:
            raise EntryValidationError(
                field_name,
                f"Extension keys must be at least {MIN_EXTENSION_KEY_LENGTH} character(s). "
                "Found empty key.",
            )
        if len(key) > MAX_EXTENSION_KEY_LENGTH:
            raise EntryValidationError(
                field_name,
                f"Extension keys must not exceed {MAX_EXTENSION_KEY_LENGTH} characters. "
                f"Key '{key}' has length {len(key)}.",
            )
        if not isinstance(value, str):
            raise EntryValidationError(
                field_name, f"Extension values must be strings. Key: '{key}'."
            )
        if len(value) > MAX_EXTENSION_VALUE_LENGTH:
            raise EntryValidationError(
                field_name,
                f"Extension values must not exceed {MAX_EXTENSION_VALUE_LENGTH} characters. "
                f"Key '{key}' has value length {len(value)}.",
            )

    return dict(extensions)


def get_rule_until(rule: str) -> datetime.datetime:
    """Return the UNTIL bound of ``rule`` as a UTC datetime."""
    until_match = UNTIL_REGEX.search(rule)
    if not until_match:
        raise InvalidRecurrenceRuleError("RRule must contain UNTIL. COUNT is not supported.")

    until_value = until_match.group("until").strip()
    if not UTC_UNTIL_REGEX.match(until_value):
        raise InvalidRecurrenceRuleError(
            f"RRule UNTIL must be in UTC (format YYYYMMDDTHHMMSSZ). Found: {until_value}"
        )

    try:
        until = datetime.datetime.strptime(until_value, RULE_UNTIL_FORMAT)
    except ValueError as e:
        raise InvalidRecurrenceRuleError(f"RRule UNTIL is not a valid date: {until_value}") from e
    return until.replace(tzinfo=datetime.UTC)


def validate_rule(
    rule: str,
    start_time: datetime.datetime,
    time_zone: zoneinfo.ZoneInfo,
) -> datetime.datetime:
    """
    Validate a bounded RRULE string and return its UNTIL as a UTC datetime.

    The rule is parsed with the same dtstart the expansion uses, so a rule accepted here
    can always be expanded later.
    """
    _validate_length(rule, "rule", MAX_RULE_LENGTH, MIN_RULE_LENGTH)
    rule_body = strip_rule_prefix(rule)

    if COUNT_REGEX.search(rule_body):
        raise InvalidRecurrenceRuleError("RRule COUNT is not supported. Use UNTIL instead.")
    if not FREQ_REGEX.search(rule_body):
        raise InvalidRecurrenceRuleError("RRule must contain FREQ.")

    until = get_rule_until(rule_body)

    try:
        rrulestr("RRULE:" + rule_body, dtstart=start_time.astimezone(time_zone))
    except (ValueError, TypeError) as e:
        raise InvalidRecurrenceRuleError(f"RRule could not be parsed: {e}") from e

    return until


def validate_recurrence_end_time(
    recurrence_end_time: datetime.datetime | None, until: datetime.datetime
) -> datetime.datetime:
    if recurrence_end_time is None:
        return until

    recurrence_end_time = validate_utc_datetime(recurrence_end_time, "recurrence_end_time")
    if abs(recurrence_end_time - until) > END_TIME_TOLERANCE:
        raise EntryValidationError(
            "recurrence_end_time",
            f"recurrence_end_time ({recurrence_end_time.isoformat()}) must match RRule UNTIL "
            f"({until.isoformat()}).",
        )
    return until


def validate_types_filter(types: Iterable[str] | None) -> list[str] | None:
    if types is None:
        return None

    types = list(types)
    if not types:
        raise EntryValidationError(
            "types", "Types filter cannot be an empty list. Use None to include all types."
        )
    return types


def validate_query_range(
    range_start: datetime.datetime, range_end: datetime.datetime
) -> tuple[datetime.datetime, datetime.datetime]:
    range_start = validate_utc_datetime(range_start, "range_start")
    range_end = validate_utc_datetime(range_end, "range_end")
    if range_end < range_start:
        raise EntryValidationError("range_end", "range_end must not be before range_start.")
    return range_start, range_end


def validate_pattern_input(
    data: RecurrencePatternInputData,
) -> tuple[datetime.datetime, datetime.datetime, dict[str, str]]:
    """
    Validate a recurrence creation request.

    Returns the normalized start time (UTC, whole seconds), the recurrence end time and
    a copy of the extensions.
    """
    validate_tenant_scope(data.organization, data.resource_path)
    validate_type(data.type)
    zone = validate_time_zone(data.time_zone)
    start_time = validate_utc_datetime(data.start_time, "start_time").replace(microsecond=0)
    validate_duration(data.duration)
    extensions = validate_extensions(data.extensions)
    until = validate_rule(data.rule, start_time, zone)
    recurrence_end_time = validate_recurrence_end_time(data.recurrence_end_time, until)
    return start_time, recurrence_end_time, extensions


def validate_instance_input(
    data: StandaloneInstanceInputData,
) -> tuple[datetime.datetime, dict[str, str]]:
    validate_tenant_scope(data.organization, data.resource_path)
    validate_type(data.type)
    validate_time_zone(data.time_zone)
    start_time = validate_utc_datetime(data.start_time, "start_time")
    validate_duration(data.duration)
    extensions = validate_extensions(data.extensions)
    return start_time, extensions
