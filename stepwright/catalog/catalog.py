"""Read-only registry of operation parameter contracts."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from ..schema import TypeDescriptor, describe
from .models import OperationEntry, OperationKey

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OperationCatalog:
    """Maps ``(service_name, operation)`` to a parameter definition.

    Descriptors are cached per pair since operation contracts are static
    for a deployment; re-registering a pair drops its cached descriptor.
    """

    def __init__(self) -> None:
        self._entries: dict[OperationKey, OperationEntry] = {}
        self._descriptors: dict[OperationKey, TypeDescriptor] = {}

    def register(
        self,
        service_name: str,
        operation: str,
        definition: Any,
        description: Optional[str] = None,
    ) -> OperationEntry:
        key = OperationKey(service_name=service_name, operation=operation)
        entry = OperationEntry(key=key, definition=definition, description=description)
        self._entries[key] = entry
        self._descriptors.pop(key, None)
        return entry

    def operation(
        self, service_name: str, name: str, description: Optional[str] = None
    ) -> Callable[[T], T]:
        """Class decorator registering a pydantic model as an operation's input."""

        def decorator(definition: T) -> T:
            self.register(
                service_name,
                name,
                definition,
                description or getattr(definition, "__doc__", None),
            )
            return definition

        return decorator

    def get(self, service_name: str, operation: str) -> Optional[OperationEntry]:
        return self._entries.get(OperationKey(service_name=service_name, operation=operation))

    def describe(self, service_name: str, operation: str) -> TypeDescriptor:
        """Return the parameter descriptor for an operation; never raises."""
        key = OperationKey(service_name=service_name, operation=operation)
        cached = self._descriptors.get(key)
        if cached is not None:
            logger.debug(f"Descriptor cache hit for {key}")
            return cached

        entry = self._entries.get(key)
        if entry is None:
            return TypeDescriptor.unknown(
                f"no parameter definition registered for {service_name}.{operation}"
            )
        descriptor = describe(entry.definition)
        self._descriptors[key] = descriptor
        return descriptor

    def services(self) -> list[str]:
        return sorted({key.service_name for key in self._entries})

    def operations(self, service_name: str) -> list[str]:
        return sorted(
            key.operation for key in self._entries if key.service_name == service_name
        )

    def __contains__(self, key: object) -> bool:
        if isinstance(key, tuple) and len(key) == 2:
            return OperationKey(service_name=key[0], operation=key[1]) in self._entries
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
