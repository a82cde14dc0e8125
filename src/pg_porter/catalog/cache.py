"""Per-run memo of catalog lookups.

The analyzer and the emitters both need the full description of most
objects. ``CatalogCache`` is built once per export run and handed to both so
each object is fetched at most once; it is discarded with the run. Failed
lookups are not cached, so the emitter sees the same ``CatalogQueryError``
the analyzer did and can degrade that object to a comment.
"""

from typing import Any

from pg_porter.catalog.base import CatalogSource
from pg_porter.catalog.models import CatalogObject, ObjectKind

_GETTERS = {
    ObjectKind.TABLE: "get_table",
    ObjectKind.PARTITIONED_TABLE: "get_table",
    ObjectKind.PARTITION: "get_table",
    ObjectKind.SUB_PARTITIONED_TABLE: "get_table",
    ObjectKind.VIEW: "get_view",
    ObjectKind.MATERIALIZED_VIEW: "get_view",
    ObjectKind.SEQUENCE: "get_sequence",
    ObjectKind.FUNCTION: "get_function",
    ObjectKind.AGGREGATE: "get_aggregate",
    ObjectKind.DOMAIN: "get_domain",
    ObjectKind.TYPE: "get_type",
    ObjectKind.OPERATOR: "get_operator",
}


class CatalogCache:
    """Memoizing front for a ``CatalogSource``'s per-object getters."""

    def __init__(self, catalog: CatalogSource):
        self.catalog = catalog
        self._details: dict[int, Any] = {}
        self._listings: dict[str, list[CatalogObject]] = {}

    def objects(self, schema: str) -> list[CatalogObject]:
        if schema not in self._listings:
            self._listings[schema] = self.catalog.list_objects(schema)
        return self._listings[schema]

    def get(self, obj: CatalogObject) -> Any:
        """Return the detail model for ``obj``, fetching it on first use.

        Raises:
            CatalogQueryError: If the catalog lookup fails.
        """
        if obj.oid not in self._details:
            getter = getattr(self.catalog, _GETTERS[obj.kind])
            self._details[obj.oid] = getter(obj.oid)
        return self._details[obj.oid]
