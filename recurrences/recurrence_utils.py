"""Recurrence utilities: rule parsing, month-day strategy resolution and occurrence generation.

Two generators expand a stored pattern into UTC candidate instants:

- ``RuleOccurrenceGenerator`` delegates to ``dateutil.rrule``. Months missing the target
  day are omitted by the RFC-5545 semantics, which is the Skip behavior.
- ``ClampedMonthlyOccurrenceGenerator`` walks the pattern month by month and moves the
  target day to the last day of shorter months.

All local wall-clock times are converted to UTC leniently: ambiguous times resolve to the
earlier offset and times inside a DST gap are shifted forward by the gap length.
"""

import calendar
import datetime
import zoneinfo
from collections.abc import Iterable, Iterator

from dateutil.rrule import rrule, rrulestr

from recurrences.constants import (
    MAX_ALWAYS_PRESENT_MONTH_DAY,
    MonthDayStrategy,
    RecurrenceFrequency,
)
from recurrences.exceptions import MonthDayOutOfBoundsError
from recurrences.services.dataclasses import RecurrencePatternData


# Candidates are expanded over a window widened by a day on each side so the local
# wall-clock window always covers the UTC one, then filtered exactly in UTC.
EXPANSION_MARGIN = datetime.timedelta(days=1)


def strip_rule_prefix(rule: str) -> str:
    if rule.upper().startswith("RRULE:"):
        return rule[len("RRULE:") :]
    return rule


def parse_rule_parts(rule: str) -> dict[str, str]:
    """Split an RRULE string into an upper-cased ``{PART: value}`` mapping."""
    parts = {}
    for chunk in strip_rule_prefix(rule).split(";"):
        if "=" not in chunk:
            continue
        key, value = chunk.split("=", 1)
        parts[key.strip().upper()] = value.strip()
    return parts


def _parse_int_list(value: str | None) -> list[int]:
    if not value:
        return []
    return [int(item) for item in value.split(",") if item.strip()]


def build_rrule(rule: str, dtstart: datetime.datetime) -> rrule:
    return rrulestr("RRULE:" + strip_rule_prefix(rule), dtstart=dtstart)


def local_to_utc(local_datetime: datetime.datetime, zone: zoneinfo.ZoneInfo) -> datetime.datetime:
    """
    Resolve a naive local wall-clock time in ``zone`` to a UTC instant.

    ``fold=0`` picks the earlier offset for ambiguous times. For times skipped by a DST gap,
    zoneinfo applies the offset in force before the gap, which lands after it.
    """
    return local_datetime.replace(tzinfo=zone, fold=0).astimezone(datetime.UTC)


def get_target_day(rule_parts: dict[str, str], local_start: datetime.datetime) -> int | None:
    """
    Return the day of month a monthly rule targets.

    That is the largest positive BYMONTHDAY value, or the local start day when the rule has
    neither BYMONTHDAY nor BYDAY. Rules picking days with BYDAY or BYSETPOS, and rules
    counting only from the end of the month, have no target day.
    """
    if rule_parts.get("BYDAY") or rule_parts.get("BYSETPOS"):
        return None

    month_days = _parse_int_list(rule_parts.get("BYMONTHDAY"))
    if not month_days:
        return local_start.day

    positive_days = [day for day in month_days if day > 0]
    if not positive_days:
        return None
    return max(positive_days)


def get_clamped_month_days(
    rule_parts: dict[str, str], local_start: datetime.datetime, year: int, month: int
) -> list[int]:
    """
    Return the sorted days of ``month`` a monthly rule lands on once clamped.

    Every BYMONTHDAY value counts, not only the target day: positive days past the end of
    the month move to its last day and negative days count back from it. Days clamped onto
    the same date collapse into one.
    """
    last_day = calendar.monthrange(year, month)[1]
    month_days = _parse_int_list(rule_parts.get("BYMONTHDAY")) or [local_start.day]

    days = set()
    for day in month_days:
        if day > 0:
            days.add(min(day, last_day))
        elif last_day + 1 + day >= 1:
            days.add(last_day + 1 + day)
    return sorted(days)


def iter_rule_months(
    local_start: datetime.datetime,
    local_until: datetime.datetime,
    interval: int = 1,
    by_month: Iterable[int] | None = None,
) -> Iterator[tuple[int, int]]:
    """
    Yield ``(year, month)`` pairs from the local start month up to and including the local
    until month, honoring the rule INTERVAL and BYMONTH parts.
    """
    by_month = set(by_month or [])
    year, month = local_start.year, local_start.month
    month_index = 0
    while (year, month) <= (local_until.year, local_until.month):
        if month_index % interval == 0 and (not by_month or month in by_month):
            yield year, month

        month_index += 1
        month += 1
        if month > 12:
            month = 1
            year += 1


def _get_rule_month_filters(rule_parts: dict[str, str]) -> tuple[int, list[int]]:
    interval = int(rule_parts.get("INTERVAL") or 1)
    return max(interval, 1), _parse_int_list(rule_parts.get("BYMONTH"))


class MonthDayStrategyResolver:
    """Decides which month-day strategy a new monthly pattern needs, if any."""

    @staticmethod
    def get_affected_months(
        target_day: int,
        local_start: datetime.datetime,
        local_until: datetime.datetime,
        interval: int = 1,
        by_month: Iterable[int] | None = None,
    ) -> list[int]:
        """Return the sorted month numbers (1-12) covered by the rule that lack ``target_day``."""
        affected_months = {
            month
            for year, month in iter_rule_months(local_start, local_until, interval, by_month)
            if calendar.monthrange(year, month)[1] < target_day
        }
        return sorted(affected_months)

    @classmethod
    def resolve(
        cls,
        rule: str,
        start_time: datetime.datetime,
        recurrence_end_time: datetime.datetime,
        time_zone: str,
        strategy: MonthDayStrategy = MonthDayStrategy.THROW,
    ) -> MonthDayStrategy | None:
        """
        Resolve the strategy to store on a new pattern.

        :param rule: the pattern's RRULE string.
        :param start_time: the pattern's UTC start time.
        :param recurrence_end_time: the pattern's UTC end bound.
        :param time_zone: the pattern's IANA time zone.
        :param strategy: the strategy the caller asked for.
        :return: ``None`` when every covered month has the target day, the requested
            strategy otherwise.
        :raises MonthDayOutOfBoundsError: when some month lacks the target day and the
            requested strategy is Throw.
        """
        rule_parts = parse_rule_parts(rule)
        if rule_parts.get("FREQ", "").upper() != RecurrenceFrequency.MONTHLY:
            return None

        zone = zoneinfo.ZoneInfo(time_zone)
        local_start = start_time.astimezone(zone)
        local_until = recurrence_end_time.astimezone(zone)

        target_day = get_target_day(rule_parts, local_start)
        if target_day is None or target_day <= MAX_ALWAYS_PRESENT_MONTH_DAY:
            return None

        interval, by_month = _get_rule_month_filters(rule_parts)
        affected_months = cls.get_affected_months(
            target_day, local_start, local_until, interval, by_month
        )
        if not affected_months:
            return None

        strategy = MonthDayStrategy(strategy)
        if strategy == MonthDayStrategy.THROW:
            raise MonthDayOutOfBoundsError(target_day, affected_months)
        return strategy


class RuleOccurrenceGenerator:
    """Expands a pattern with ``dateutil.rrule``."""

    def generate(
        self,
        pattern: RecurrencePatternData,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> Iterator[datetime.datetime]:
        zone = zoneinfo.ZoneInfo(pattern.time_zone)
        rule = build_rrule(pattern.rule, pattern.start_time.astimezone(zone))

        window_start = (range_start - EXPANSION_MARGIN).astimezone(zone)
        window_end = (range_end + EXPANSION_MARGIN).astimezone(zone)
        for local_occurrence in rule.between(window_start, window_end, inc=True):
            yield local_to_utc(local_occurrence.replace(tzinfo=None), zone)


class ClampedMonthlyOccurrenceGenerator:
    """
    Expands a monthly pattern one calendar month at a time, clamping each month day to the
    length of the month: a pattern on the 31st yields Jan 31, Feb 28/29, Mar 31, Apr 30,
    and ``BYMONTHDAY=15,31`` yields the 15th plus the clamped 31st.

    An occurrence outside the pattern bounds is skipped without stopping the walk, so an
    UNTIL before the clamped day drops only that month. Rules picking days with BYDAY are
    expanded by ``RuleOccurrenceGenerator``.
    """

    def generate(
        self,
        pattern: RecurrencePatternData,
        range_start: datetime.datetime,
        range_end: datetime.datetime,
    ) -> Iterator[datetime.datetime]:
        zone = zoneinfo.ZoneInfo(pattern.time_zone)
        local_start = pattern.start_time.astimezone(zone)
        local_until = pattern.recurrence_end_time.astimezone(zone)

        rule_parts = parse_rule_parts(pattern.rule)
        target_day = get_target_day(rule_parts, local_start)
        if target_day is None:
            yield from RuleOccurrenceGenerator().generate(pattern, range_start, range_end)
            return

        time_of_day = local_start.time().replace(tzinfo=None)
        interval, by_month = _get_rule_month_filters(rule_parts)
        for year, month in iter_rule_months(local_start, local_until, interval, by_month):
            for day in get_clamped_month_days(rule_parts, local_start, year, month):
                occurrence = local_to_utc(
                    datetime.datetime.combine(datetime.date(year, month, day), time_of_day),
                    zone,
                )

                if not pattern.start_time <= occurrence <= pattern.recurrence_end_time:
                    continue
                if range_start <= occurrence < range_end:
                    yield occurrence


def get_occurrence_generator(
    pattern: RecurrencePatternData,
) -> RuleOccurrenceGenerator | ClampedMonthlyOccurrenceGenerator:
    if pattern.month_day_strategy == MonthDayStrategy.CLAMP:
        return ClampedMonthlyOccurrenceGenerator()
    return RuleOccurrenceGenerator()
