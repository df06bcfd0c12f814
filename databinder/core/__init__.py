"""Binding layer: linker, batch iteration and the DataBinder facade."""

from databinder.core.batching import (
    BatchIterator,
    IteratorState,
    apply_mapping,
    extract_items,
)
from databinder.core.binder import DataBinder
from databinder.core.linker import (
    DEFAULT_METHOD_NAME,
    DatasourceLinkConfig,
    Linker,
    MethodConfig,
    ResolvedMethod,
)


__all__ = [
    "DEFAULT_METHOD_NAME",
    "BatchIterator",
    "DataBinder",
    "DatasourceLinkConfig",
    "IteratorState",
    "Linker",
    "MethodConfig",
    "ResolvedMethod",
    "apply_mapping",
    "extract_items",
]
