from .config import InventoryConfig, VSphereConfig
from .report import ColumnSpec, CountSpec, FallbackSpec, JoinSpec, ReportDefinition

__all__ = [
    "ColumnSpec",
    "CountSpec",
    "FallbackSpec",
    "InventoryConfig",
    "JoinSpec",
    "ReportDefinition",
    "VSphereConfig",
]
