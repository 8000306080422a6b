from collections.abc import Iterable

from django.core.exceptions import ImproperlyConfigured
from django.db.models.query import QuerySet


class BaseTenantScopedModelQuerySet(QuerySet):
    """
    Base QuerySet for models owned by a tenant scope.

    This ensures that all queries are scoped to an organization and resource path.
    """

    def filter_by_tenant(self, organization: str, resource_path: str):
        """
        Filters the queryset by the specified tenant scope.
        :param organization: Organization owning the records.
        :param resource_path: Resource path owning the records.
        :return: Filtered QuerySet.
        """
        return super().filter(organization=organization, resource_path=resource_path)

    def filter_by_types(self, types: Iterable[str] | None):
        """
        Filters the queryset by type. ``None`` means no type filter at all.
        """
        if types is None:
            return self
        return super().filter(type__in=list(types))

    def _check_required_tenant_filter(self):
        where_str = str(self.query.where)
        for required_field in ("organization", "resource_path"):
            if required_field not in where_str:
                raise ImproperlyConfigured(
                    f"QuerySet must be filtered by `{required_field}` on model {self.model}"
                )

    def __iter__(self):
        self._check_required_tenant_filter()
        return super().__iter__()

    def __aiter__(self):
        self._check_required_tenant_filter()
        return super().__aiter__()

    def count(self):
        self._check_required_tenant_filter()
        return super().count()

    def update(self, **kwargs):
        if "organization" in kwargs or "resource_path" in kwargs:
            raise ValueError(
                "The tenant scope (`organization`, `resource_path`) cannot be updated."
            )
        return super().update(**kwargs)

    def delete(self):
        self._check_required_tenant_filter()
        return super().delete()
