import uuid

from django.db import models

from common.models import TenantScopedModel
from recurrences.constants import (
    MAX_RULE_LENGTH,
    MAX_TIME_ZONE_LENGTH,
    MAX_TYPE_LENGTH,
    MonthDayStrategy,
)
from recurrences.managers import (
    CancellationManager,
    ModificationManager,
    RecurrencePatternManager,
    StandaloneInstanceManager,
)
from recurrences.services.dataclasses import (
    CancellationData,
    ModificationData,
    RecurrencePatternData,
    StandaloneInstanceData,
)


class RecurrencePattern(TenantScopedModel):
    """
    A rule generating repeating occurrences. Occurrences are never stored; they are
    expanded on demand for a query window.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)  # noqa: A003
    type = models.CharField(max_length=MAX_TYPE_LENGTH)  # noqa: A003
    start_time = models.DateTimeField(
        help_text="UTC start of the first occurrence; anchors the occurrences' time of day."
    )
    duration = models.DurationField()
    recurrence_end_time = models.DateTimeField(help_text="The rule's UNTIL bound, in UTC.")
    rule = models.CharField(max_length=MAX_RULE_LENGTH)
    time_zone = models.CharField(max_length=MAX_TIME_ZONE_LENGTH)
    extensions = models.JSONField(default=dict, blank=True)
    month_day_strategy = models.CharField(
        max_length=10,
        choices=MonthDayStrategy,
        null=True,
        blank=True,
        help_text=(
            "Only set for monthly rules whose target day is missing from some covered month."
        ),
    )

    objects: RecurrencePatternManager = RecurrencePatternManager()

    cancellations: "models.Manager[Cancellation]"
    modifications: "models.Manager[Modification]"

    class Meta:
        indexes = (
            models.Index(
                fields=("organization", "resource_path", "start_time", "recurrence_end_time"),
                name="recurrence_pattern_range_idx",
            ),
        )

    def __str__(self):
        return f"{self.type} ({self.rule})"

    def to_data(self) -> RecurrencePatternData:
        return RecurrencePatternData(
            id=self.id,
            organization=self.organization,
            resource_path=self.resource_path,
            type=self.type,
            start_time=self.start_time,
            duration=self.duration,
            recurrence_end_time=self.recurrence_end_time,
            rule=self.rule,
            time_zone=self.time_zone,
            extensions=dict(self.extensions or {}),
            month_day_strategy=(
                MonthDayStrategy(self.month_day_strategy) if self.month_day_strategy else None
            ),
        )


class StandaloneInstance(TenantScopedModel):
    """
    A single occurrence unrelated to any recurrence pattern.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)  # noqa: A003
    type = models.CharField(max_length=MAX_TYPE_LENGTH)  # noqa: A003
    start_time = models.DateTimeField()
    duration = models.DurationField()
    # always start_time + duration, kept for range queries
    end_time = models.DateTimeField(editable=False)
    time_zone = models.CharField(max_length=MAX_TIME_ZONE_LENGTH)
    extensions = models.JSONField(default=dict, blank=True)

    objects: StandaloneInstanceManager = StandaloneInstanceManager()

    class Meta:
        indexes = (
            models.Index(
                fields=("organization", "resource_path", "start_time", "end_time"),
                name="standalone_instance_range_idx",
            ),
        )

    def __str__(self):
        return f"{self.type} from {self.start_time} to {self.end_time}"

    def save(self, *args, **kwargs):
        self.end_time = self.start_time + self.duration
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and (
            "start_time" in update_fields or "duration" in update_fields
        ):
            kwargs["update_fields"] = {*update_fields, "end_time"}
        super().save(*args, **kwargs)

    def to_data(self) -> StandaloneInstanceData:
        return StandaloneInstanceData(
            id=self.id,
            organization=self.organization,
            resource_path=self.resource_path,
            type=self.type,
            start_time=self.start_time,
            duration=self.duration,
            time_zone=self.time_zone,
            extensions=dict(self.extensions or {}),
        )


class Cancellation(TenantScopedModel):
    """
    Suppresses the occurrence a pattern generates at ``original_time_utc``.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)  # noqa: A003
    pattern = models.ForeignKey(
        RecurrencePattern,
        on_delete=models.CASCADE,
        related_name="cancellations",
    )
    original_time_utc = models.DateTimeField()
    extensions = models.JSONField(default=dict, blank=True)

    objects: CancellationManager = CancellationManager()

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("pattern", "original_time_utc"),
                name="unique_cancellation_per_occurrence",
            ),
        )

    def __str__(self):
        return f"Cancellation of {self.pattern_id} at {self.original_time_utc}"

    def to_data(self) -> CancellationData:
        return CancellationData(
            id=self.id,
            organization=self.organization,
            resource_path=self.resource_path,
            recurrence_id=self.pattern_id,
            original_time_utc=self.original_time_utc,
            extensions=dict(self.extensions or {}),
        )


class Modification(TenantScopedModel):
    """
    Replaces the time, duration and extensions of the occurrence a pattern generates at
    ``original_time_utc``. The ``original_*`` fields snapshot the pattern's values when the
    modification was created.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)  # noqa: A003
    pattern = models.ForeignKey(
        RecurrencePattern,
        on_delete=models.CASCADE,
        related_name="modifications",
    )
    original_time_utc = models.DateTimeField()
    original_duration = models.DurationField()
    original_extensions = models.JSONField(default=dict, blank=True)
    start_time = models.DateTimeField()
    duration = models.DurationField()
    # always start_time + duration, kept for range queries
    end_time = models.DateTimeField(editable=False)
    extensions = models.JSONField(default=dict, blank=True)

    objects: ModificationManager = ModificationManager()

    class Meta:
        constraints = (
            models.UniqueConstraint(
                fields=("pattern", "original_time_utc"),
                name="unique_modification_per_occurrence",
            ),
        )
        indexes = (
            models.Index(
                fields=("organization", "resource_path", "start_time", "end_time"),
                name="modification_range_idx",
            ),
        )

    def __str__(self):
        return f"Modification of {self.pattern_id} at {self.original_time_utc}"

    def save(self, *args, **kwargs):
        self.end_time = self.start_time + self.duration
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and (
            "start_time" in update_fields or "duration" in update_fields
        ):
            kwargs["update_fields"] = {*update_fields, "end_time"}
        super().save(*args, **kwargs)

    def to_data(self) -> ModificationData:
        return ModificationData(
            id=self.id,
            organization=self.organization,
            resource_path=self.resource_path,
            recurrence_id=self.pattern_id,
            original_time_utc=self.original_time_utc,
            original_duration=self.original_duration,
            start_time=self.start_time,
            duration=self.duration,
            original_extensions=dict(self.original_extensions or {}),
            extensions=dict(self.extensions or {}),
        )
