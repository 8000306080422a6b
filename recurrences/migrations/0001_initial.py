import uuid

import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations, models


def tenant_scope_fields():
    return [
        (
            "created",
            model_utils.fields.AutoCreatedField(
                db_index=True,
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="created",
            ),
        ),
        (
            "modified",
            model_utils.fields.AutoLastModifiedField(
                db_index=True,
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="modified",
            ),
        ),
        (
            "organization",
            models.CharField(
                blank=True,
                default="",
                help_text="The organization owning this record. Queries should filter by it.",
                max_length=100,
            ),
        ),
        (
            "resource_path",
            models.CharField(
                blank=True,
                default="",
                help_text="The resource path inside the organization owning this record.",
                max_length=100,
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="RecurrencePattern",
            fields=[
                *tenant_scope_fields(),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("type", models.CharField(max_length=100)),
                (
                    "start_time",
                    models.DateTimeField(
                        help_text=(
                            "UTC start of the first occurrence; anchors the occurrences' "
                            "time of day."
                        )
                    ),
                ),
                ("duration", models.DurationField()),
                (
                    "recurrence_end_time",
                    models.DateTimeField(help_text="The rule's UNTIL bound, in UTC."),
                ),
                ("rule", models.CharField(max_length=2000)),
                ("time_zone", models.CharField(max_length=100)),
                ("extensions", models.JSONField(blank=True, default=dict)),
                (
                    "month_day_strategy",
                    models.CharField(
                        blank=True,
                        choices=[("throw", "Throw"), ("skip", "Skip"), ("clamp", "Clamp")],
                        help_text=(
                            "Only set for monthly rules whose target day is missing from some "
                            "covered month."
                        ),
                        max_length=10,
                        null=True,
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=[
                            "organization",
                            "resource_path",
                            "start_time",
                            "recurrence_end_time",
                        ],
                        name="recurrence_pattern_range_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="StandaloneInstance",
            fields=[
                *tenant_scope_fields(),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("type", models.CharField(max_length=100)),
                ("start_time", models.DateTimeField()),
                ("duration", models.DurationField()),
                ("end_time", models.DateTimeField(editable=False)),
                ("time_zone", models.CharField(max_length=100)),
                ("extensions", models.JSONField(blank=True, default=dict)),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["organization", "resource_path", "start_time", "end_time"],
                        name="standalone_instance_range_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Cancellation",
            fields=[
                *tenant_scope_fields(),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("original_time_utc", models.DateTimeField()),
                ("extensions", models.JSONField(blank=True, default=dict)),
                (
                    "pattern",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="cancellations",
                        to="recurrences.recurrencepattern",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        fields=("pattern", "original_time_utc"),
                        name="unique_cancellation_per_occurrence",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Modification",
            fields=[
                *tenant_scope_fields(),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4, editable=False, primary_key=True, serialize=False
                    ),
                ),
                ("original_time_utc", models.DateTimeField()),
                ("original_duration", models.DurationField()),
                ("original_extensions", models.JSONField(blank=True, default=dict)),
                ("start_time", models.DateTimeField()),
                ("duration", models.DurationField()),
                ("end_time", models.DateTimeField(editable=False)),
                ("extensions", models.JSONField(blank=True, default=dict)),
                (
                    "pattern",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="modifications",
                        to="recurrences.recurrencepattern",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["organization", "resource_path", "start_time", "end_time"],
                        name="modification_range_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("pattern", "original_time_utc"),
                        name="unique_modification_per_occurrence",
                    )
                ],
            },
        ),
    ]
