"""Schema-tolerant storage and share inventory export."""

from ncs_inventory.aggregation import aggregate, aggregate_hosts, is_active_path
from ncs_inventory.fields import ABSENT, FieldIndex, normalize_key, resolve, resolve_or

__all__ = [
    "ABSENT",
    "FieldIndex",
    "aggregate",
    "aggregate_hosts",
    "is_active_path",
    "normalize_key",
    "resolve",
    "resolve_or",
]
