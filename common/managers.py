from django.db.models import Manager

from common.querysets import BaseTenantScopedModelQuerySet


class BaseTenantScopedModelManager(Manager):
    """
    Base manager for tenant scoped models.
    This manager can be extended by other tenant scoped models.
    """

    def get_queryset(self) -> BaseTenantScopedModelQuerySet:
        return BaseTenantScopedModelQuerySet(self.model, using=self._db)

    def filter_by_tenant(self, organization: str, resource_path: str):
        """
        Filters the queryset by the specified tenant scope.
        :param organization: Organization owning the records.
        :param resource_path: Resource path owning the records.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_tenant(organization, resource_path)
