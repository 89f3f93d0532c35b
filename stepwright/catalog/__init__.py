"""Operation catalog: the parameter contracts steps may reference."""

from __future__ import annotations

from typing import Any, Optional

from .catalog import OperationCatalog
from .models import OperationEntry, OperationKey

# Process-wide default registry. Operation contracts register themselves
# here at import time (see ``stepwright.operations``); engines may be
# handed a separate catalog instead, which is what the tests do.
CATALOG = OperationCatalog()


def register_operation(
    service_name: str,
    operation: str,
    definition: Any,
    description: Optional[str] = None,
) -> OperationEntry:
    """Add ``definition`` to ``CATALOG`` under ``service_name.operation``."""
    return CATALOG.register(service_name, operation, definition, description)


__all__ = [
    "CATALOG",
    "OperationCatalog",
    "OperationEntry",
    "OperationKey",
    "register_operation",
]
