"""Language-neutral structural descriptor of an operation's input contract."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

DescriptorKind = Literal[
    "object",
    "string",
    "number",
    "integer",
    "boolean",
    "array",
    "enum",
    "record",
    "union",
    "null",
    "any",
    "unknown",
]

# JSON Schema keyword -> descriptor constraint name
CONSTRAINT_KEYWORDS: dict[str, str] = {
    "minLength": "min_length",
    "maxLength": "max_length",
    "pattern": "pattern",
    "format": "format",
    "minimum": "minimum",
    "maximum": "maximum",
    "exclusiveMinimum": "exclusive_minimum",
    "exclusiveMaximum": "exclusive_maximum",
    "multipleOf": "multiple_of",
    "minItems": "min_items",
    "maxItems": "max_items",
    "uniqueItems": "unique_items",
}


CAMEL_CASE_KEYS: dict[str, str] = {
    "item_type": "itemType",
    "enum_values": "enumValues",
    "value_type": "valueType",
    "default_value": "defaultValue",
}

class TypeDescriptor(BaseModel):
    """Recursive type tree with constraints.

    ``kind`` is the discriminator; only the attributes relevant to a kind
    are populated (``properties`` for objects, ``item_type`` for arrays,
    ``enum_values`` for enums, ``value_type`` for records and ``options``
    for unions). ``reason`` explains an ``unknown`` descriptor.
    """

    kind: DescriptorKind
    optional: bool = False
    nullable: bool = False
    description: Optional[str] = None
    constraints: dict[str, Any] = Field(default_factory=dict)
    item_type: Optional[TypeDescriptor] = None
    properties: Optional[dict[str, TypeDescriptor]] = None
    enum_values: Optional[list[Any]] = None
    value_type: Optional[TypeDescriptor] = None
    options: Optional[list[TypeDescriptor]] = None
    has_default: bool = False
    default_value: Any = None
    reason: Optional[str] = None

    @classmethod
    def unknown(cls, reason: str, optional: bool = False) -> TypeDescriptor:
        return cls(kind="unknown", reason=reason, optional=optional)

    @property
    def required_fields(self) -> list[str]:
        return [k for k, v in (self.properties or {}).items() if not v.optional]

    @property
    def optional_fields(self) -> list[str]:
        return [k for k, v in (self.properties or {}).items() if v.optional]

    def to_dict(self, camel_case: bool = False) -> dict[str, Any]:
        """Compact plain-dict form: ``kind`` and ``optional`` always, the rest when set.

        With ``camel_case`` the multi-word keys are spelled ``itemType``,
        ``enumValues``, ``valueType`` and ``defaultValue`` at every level.
        """

        def key(name: str) -> str:
            return CAMEL_CASE_KEYS[name] if camel_case else name

        data: dict[str, Any] = {"kind": self.kind}
        if self.constraints:
            data["constraints"] = dict(self.constraints)
        if self.item_type is not None:
            data[key("item_type")] = self.item_type.to_dict(camel_case)
        if self.properties is not None:
            data["properties"] = {
                k: v.to_dict(camel_case) for k, v in self.properties.items()
            }
        if self.enum_values is not None:
            data[key("enum_values")] = list(self.enum_values)
        if self.value_type is not None:
            data[key("value_type")] = self.value_type.to_dict(camel_case)
        if self.options is not None:
            data["options"] = [o.to_dict(camel_case) for o in self.options]
        data["optional"] = self.optional
        if self.nullable:
            data["nullable"] = True
        if self.has_default:
            data[key("default_value")] = self.default_value
        if self.description:
            data["description"] = self.description
        if self.reason:
            data["reason"] = self.reason
        return data

    def to_json_schema(self) -> dict[str, Any]:
        """Reconstruct a JSON Schema equivalent to this descriptor."""
        schema: dict[str, Any]
        if self.kind == "object":
            props = self.properties or {}
            schema = {
                "type": "object",
                "properties": {k: v.to_json_schema() for k, v in props.items()},
            }
            required = self.required_fields
            if required:
                schema["required"] = required
        elif self.kind == "record":
            value = self.value_type.to_json_schema() if self.value_type else True
            schema = {"type": "object", "additionalProperties": value}
        elif self.kind == "array":
            schema = {"type": "array"}
            if self.item_type is not None:
                schema["items"] = self.item_type.to_json_schema()
        elif self.kind == "enum":
            schema = {"enum": list(self.enum_values or [])}
        elif self.kind == "union":
            schema = {"anyOf": [o.to_json_schema() for o in self.options or []]}
        elif self.kind in ("any", "unknown"):
            schema = {}
        else:
            schema = {"type": self.kind}

        keyword_for = {v: k for k, v in CONSTRAINT_KEYWORDS.items()}
        for name, value in self.constraints.items():
            if name in keyword_for:
                schema[keyword_for[name]] = value

        if self.nullable:
            schema = {"anyOf": [schema, {"type": "null"}]}
        if self.description:
            schema["description"] = self.description
        if self.has_default:
            schema["default"] = self.default_value
        return schema


TypeDescriptor.model_rebuild()
