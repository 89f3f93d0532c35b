"""Schema introspection for operation parameter contracts."""

from .descriptor import DescriptorKind, TypeDescriptor
from .introspect import describe, to_json_schema

__all__ = ["DescriptorKind", "TypeDescriptor", "describe", "to_json_schema"]
