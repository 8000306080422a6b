import datetime
import uuid
from collections.abc import Iterable

from common.managers import BaseTenantScopedModelManager
from recurrences.querysets import (
    CancellationQuerySet,
    ModificationQuerySet,
    RecurrencePatternQuerySet,
    StandaloneInstanceQuerySet,
)


class RecurrencePatternManager(BaseTenantScopedModelManager):
    def get_queryset(self) -> RecurrencePatternQuerySet:
        return RecurrencePatternQuerySet(self.model, using=self._db)

    def filter_overlapping(self, start: datetime.datetime, end: datetime.datetime):
        return self.get_queryset().filter_overlapping(start, end)


class StandaloneInstanceManager(BaseTenantScopedModelManager):
    def get_queryset(self) -> StandaloneInstanceQuerySet:
        return StandaloneInstanceQuerySet(self.model, using=self._db)

    def filter_overlapping(self, start: datetime.datetime, end: datetime.datetime):
        return self.get_queryset().filter_overlapping(start, end)


class CancellationManager(BaseTenantScopedModelManager):
    def get_queryset(self) -> CancellationQuerySet:
        return CancellationQuerySet(self.model, using=self._db)

    def filter_by_patterns(self, pattern_ids: Iterable[uuid.UUID]):
        return self.get_queryset().filter_by_patterns(pattern_ids)


class ModificationManager(BaseTenantScopedModelManager):
    def get_queryset(self) -> ModificationQuerySet:
        return ModificationQuerySet(self.model, using=self._db)

    def filter_by_patterns(self, pattern_ids: Iterable[uuid.UUID]):
        return self.get_queryset().filter_by_patterns(pattern_ids)
