from django.db import models
from django.utils.translation import gettext_lazy as _

from model_utils.fields import AutoCreatedField, AutoLastModifiedField

from common.constants import MAX_ORGANIZATION_LENGTH, MAX_RESOURCE_PATH_LENGTH
from common.managers import BaseTenantScopedModelManager


class IndexedTimeStampedModel(models.Model):
    created = AutoCreatedField(_("created"), db_index=True)
    modified = AutoLastModifiedField(_("modified"), db_index=True)

    class Meta:
        abstract = True


class TenantScopedModel(IndexedTimeStampedModel):
    """
    Represents a model owned by a tenant scope, the (organization, resource_path) pair.
    Both values are free-form and may be empty; queries must always filter by them.
    """

    organization = models.CharField(
        max_length=MAX_ORGANIZATION_LENGTH,
        blank=True,
        default="",
        help_text="The organization owning this record. Queries should filter by it.",
    )
    resource_path = models.CharField(
        max_length=MAX_RESOURCE_PATH_LENGTH,
        blank=True,
        default="",
        help_text="The resource path inside the organization owning this record.",
    )

    objects: BaseTenantScopedModelManager = BaseTenantScopedModelManager()
    original_manager = models.Manager()

    class Meta:
        abstract = True
