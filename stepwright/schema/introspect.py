"""Structural reflection of declarative validation definitions.

Definitions are pydantic models (or any type a ``TypeAdapter`` accepts)
and are reflected through their JSON Schema, which is the definition tree
the operation catalog owns. Raw JSON Schema dicts are accepted as well.
No validation is performed; validators attached to a field are invisible
here and the visitor only reports structure and declared constraints.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, TypeAdapter

from ..errors import SchemaIntrospectionError
from .descriptor import CONSTRAINT_KEYWORDS, TypeDescriptor

logger = logging.getLogger(__name__)

_SCALAR_KINDS = {"string", "number", "integer", "boolean", "null"}


def describe(definition: Any) -> TypeDescriptor:
    """Return the descriptor for ``definition``; never raises.

    Malformed input produces ``kind="unknown"`` with the failure reason so
    that one bad definition does not block guidance for a whole step.
    """
    try:
        schema = to_json_schema(definition)
        return _SchemaVisitor(schema).visit(schema)
    except Exception as exc:
        reason = f"{type(exc).__name__}: {exc}"
        logger.warning(f"Schema introspection degraded to unknown: {reason}")
        return TypeDescriptor.unknown(reason)


def to_json_schema(definition: Any) -> dict[str, Any]:
    """Normalise a definition into a JSON Schema dict."""
    if definition is None:
        raise SchemaIntrospectionError("no definition supplied")
    if isinstance(definition, dict):
        return definition
    if isinstance(definition, TypeAdapter):
        return definition.json_schema()
    if isinstance(definition, type) and issubclass(definition, BaseModel):
        return definition.model_json_schema()
    if isinstance(definition, BaseModel):
        return type(definition).model_json_schema()
    return TypeAdapter(definition).json_schema()


class _SchemaVisitor:
    """One visit per node kind; ``$ref`` and wrapper nodes unwrap first."""

    def __init__(self, root: dict[str, Any]) -> None:
        self._root = root
        self._ref_stack: list[str] = []

    def visit(self, node: Any, optional: bool = False) -> TypeDescriptor:
        if node is True:
            return TypeDescriptor(kind="any", optional=optional)
        if not isinstance(node, dict):
            raise SchemaIntrospectionError(
                f"expected a schema object, got {type(node).__name__}"
            )

        ref = node.get("$ref")
        if ref is not None:
            if ref in self._ref_stack:
                return TypeDescriptor.unknown(
                    f"recursive reference to {ref}", optional=optional
                )
            target = self._resolve_ref(ref)
            merged = {**target, **{k: v for k, v in node.items() if k != "$ref"}}
            self._ref_stack.append(ref)
            try:
                return self.visit(merged, optional)
            finally:
                self._ref_stack.pop()

        all_of = node.get("allOf")
        if isinstance(all_of, list) and len(all_of) == 1:
            merged = {**all_of[0], **{k: v for k, v in node.items() if k != "allOf"}}
            return self.visit(merged, optional)

        descriptor = self._visit_node(node, optional)
        if descriptor.description is None and isinstance(node.get("description"), str):
            descriptor.description = node["description"]
        if "default" in node and node["default"] is not None:
            descriptor.has_default = True
            descriptor.default_value = node["default"]
        return descriptor

    # ------------------------------------------------------------------
    def _visit_node(self, node: dict[str, Any], optional: bool) -> TypeDescriptor:
        variants = node.get("anyOf", node.get("oneOf"))
        if isinstance(variants, list):
            return self._visit_union(variants, optional)

        if "enum" in node:
            return TypeDescriptor(
                kind="enum", enum_values=list(node["enum"]), optional=optional
            )
        if "const" in node:
            return TypeDescriptor(
                kind="enum", enum_values=[node["const"]], optional=optional
            )

        node_type = node.get("type")
        if isinstance(node_type, list):
            variants = [{**node, "type": t} for t in node_type]
            return self._visit_union(variants, optional)

        if node_type == "object":
            return self._visit_object(node, optional)
        if node_type == "array":
            return self._visit_array(node, optional)
        if node_type in _SCALAR_KINDS:
            return TypeDescriptor(
                kind=node_type,
                constraints=_constraints(node),
                optional=optional,
            )
        if node_type is None:
            if "properties" in node:
                return self._visit_object(node, optional)
            if not set(node) - {"title", "description", "default", "examples"}:
                return TypeDescriptor(kind="any", optional=optional)
            unsupported = sorted(set(node) - {"title", "description", "default"})
            return TypeDescriptor.unknown(
                f"unsupported schema keywords: {', '.join(unsupported)}",
                optional=optional,
            )
        return TypeDescriptor.unknown(f"unsupported type: {node_type}", optional=optional)

    def _visit_object(self, node: dict[str, Any], optional: bool) -> TypeDescriptor:
        properties = node.get("properties")
        if properties is None:
            extra = node.get("additionalProperties", True)
            value_type = self.visit(extra) if extra is not False else None
            return TypeDescriptor(
                kind="record",
                value_type=value_type,
                constraints=_constraints(node),
                optional=optional,
            )
        if not isinstance(properties, dict):
            raise SchemaIntrospectionError("object properties must be a mapping")
        required = set(node.get("required", []))
        return TypeDescriptor(
            kind="object",
            properties={
                name: self.visit(prop, optional=name not in required)
                for name, prop in properties.items()
            },
            optional=optional,
        )

    def _visit_array(self, node: dict[str, Any], optional: bool) -> TypeDescriptor:
        items = node.get("items")
        prefix = node.get("prefixItems")
        if items is None and isinstance(prefix, list):
            item_type = self._visit_union(prefix, False) if len(prefix) > 1 else self.visit(prefix[0])
        elif items is None:
            item_type = TypeDescriptor(kind="any")
        else:
            item_type = self.visit(items)
        return TypeDescriptor(
            kind="array",
            item_type=item_type,
            constraints=_constraints(node),
            optional=optional,
        )

    def _visit_union(self, variants: list[Any], optional: bool) -> TypeDescriptor:
        non_null = [v for v in variants if not (isinstance(v, dict) and v.get("type") == "null")]
        nullable = len(non_null) < len(variants)
        if not non_null:
            return TypeDescriptor(kind="null", optional=optional)
        if len(non_null) == 1:
            inner = self.visit(non_null[0], optional)
            inner.nullable = inner.nullable or nullable
            return inner
        return TypeDescriptor(
            kind="union",
            options=[self.visit(v) for v in non_null],
            nullable=nullable,
            optional=optional,
        )

    def _resolve_ref(self, ref: str) -> dict[str, Any]:
        if not ref.startswith("#/"):
            raise SchemaIntrospectionError(f"cannot resolve external reference {ref}")
        target: Any = self._root
        for part in ref[2:].split("/"):
            if not isinstance(target, dict) or part not in target:
                raise SchemaIntrospectionError(f"unresolved reference {ref}")
            target = target[part]
        if not isinstance(target, dict):
            raise SchemaIntrospectionError(f"reference {ref} is not a schema object")
        return target


def _constraints(node: dict[str, Any]) -> dict[str, Any]:
    return {
        name: node[keyword]
        for keyword, name in CONSTRAINT_KEYWORDS.items()
        if keyword in node
    }

