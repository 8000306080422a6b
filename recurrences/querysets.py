import datetime
import uuid
from collections.abc import Iterable

from django.db.models import Q

from common.querysets import BaseTenantScopedModelQuerySet


class RecurrencePatternQuerySet(BaseTenantScopedModelQuerySet):
    def filter_overlapping(self, start: datetime.datetime, end: datetime.datetime):
        """
        Returns patterns whose [start_time, recurrence_end_time] span overlaps the
        half-open window [start, end).
        """
        return self.filter(start_time__lt=end, recurrence_end_time__gte=start)


class StandaloneInstanceQuerySet(BaseTenantScopedModelQuerySet):
    def filter_overlapping(self, start: datetime.datetime, end: datetime.datetime):
        """
        Returns instances whose [start_time, end_time) span overlaps the window [start, end).
        """
        return self.filter(start_time__lt=end, end_time__gt=start)


class PatternChildQuerySetMixin:
    def filter_by_patterns(self, pattern_ids: Iterable[uuid.UUID]):
        return self.filter(pattern_id__in=list(pattern_ids))


class CancellationQuerySet(PatternChildQuerySetMixin, BaseTenantScopedModelQuerySet):
    pass


class ModificationQuerySet(PatternChildQuerySetMixin, BaseTenantScopedModelQuerySet):
    def filter_relevant_to_range(self, start: datetime.datetime, end: datetime.datetime):
        """
        Returns modifications relevant to the window [start, end): either the occurrence
        they replace was generated inside it, or the replacement itself overlaps it.
        """
        return self.filter(
            Q(original_time_utc__gte=start, original_time_utc__lt=end)
            | Q(start_time__lt=end, end_time__gt=start)
        )
