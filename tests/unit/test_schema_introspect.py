"""Tests for structural reflection of parameter definitions."""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, Field

from stepwright.schema import TypeDescriptor, describe


class Colour(str, Enum):
    RED = "red"
    BLUE = "blue"


class Address(BaseModel):
    street: str
    postcode: Optional[str] = None


class CreateTask(BaseModel):
    title: str = Field(..., min_length=3, max_length=80, description="Task title")
    priority: int = Field(default=2, ge=1, le=5)
    labels: List[str] = Field(default_factory=list, max_length=10)
    colour: Colour = Colour.RED
    kind: Literal["bug", "feature"]
    address: Optional[Address] = None
    metadata: Dict[str, int] = Field(default_factory=dict)
    estimate: Union[int, str, None] = None
    slug: Annotated[str, AfterValidator(str.lower)] = "task"


def test_optional_string_without_default():
    schema = {
        "type": "object",
        "properties": {"note": {"type": "string"}},
    }
    descriptor = describe(schema)
    assert descriptor.properties["note"].to_dict() == {"kind": "string", "optional": True}


def test_enum_field_is_required():
    schema = {
        "type": "object",
        "properties": {"mode": {"enum": ["a", "b"]}},
        "required": ["mode"],
    }
    descriptor = describe(schema)
    assert descriptor.properties["mode"].to_dict() == {
        "kind": "enum",
        "enum_values": ["a", "b"],
        "optional": False,
    }


def test_pydantic_optional_field_reports_nullable_without_default():
    class Model(BaseModel):
        note: Optional[str] = None

    prop = describe(Model).properties["note"]
    assert prop.kind == "string"
    assert prop.optional is True
    assert prop.nullable is True
    assert prop.has_default is False


def test_pydantic_model_structure_and_constraints():
    descriptor = describe(CreateTask)
    assert descriptor.kind == "object"
    props = descriptor.properties

    assert props["title"].kind == "string"
    assert props["title"].optional is False
    assert props["title"].constraints == {"min_length": 3, "max_length": 80}
    assert props["title"].description == "Task title"

    assert props["priority"].kind == "integer"
    assert props["priority"].constraints == {"minimum": 1, "maximum": 5}
    assert props["priority"].default_value == 2

    assert props["labels"].kind == "array"
    assert props["labels"].item_type.kind == "string"
    assert props["labels"].constraints == {"max_items": 10}

    assert props["colour"].kind == "enum"
    assert props["colour"].enum_values == ["red", "blue"]
    assert props["colour"].default_value == "red"

    assert props["kind"].kind == "enum"
    assert props["kind"].enum_values == ["bug", "feature"]

    assert props["address"].kind == "object"
    assert props["address"].nullable is True
    assert props["address"].required_fields == ["street"]

    assert props["metadata"].kind == "record"
    assert props["metadata"].value_type.kind == "integer"

    assert props["estimate"].kind == "union"
    assert [o.kind for o in props["estimate"].options] == ["integer", "string"]

    # Validators attached through Annotated are invisible to reflection.
    assert props["slug"].kind == "string"
    assert props["slug"].default_value == "task"


def test_required_optional_partition():
    descriptor = describe(CreateTask)
    assert descriptor.required_fields == ["title", "kind"]
    assert "priority" in descriptor.optional_fields


def test_round_trip_preserves_required_partition():
    descriptor = describe(CreateTask)
    again = describe(descriptor.to_json_schema())
    assert again.required_fields == descriptor.required_fields
    assert again.optional_fields == descriptor.optional_fields
    assert again.properties["address"].required_fields == ["street"]


def test_plain_types_are_accepted():
    assert describe(int).kind == "integer"
    assert describe(List[str]).item_type.kind == "string"
    assert describe(Dict[str, Any]).kind == "record"


def test_recursive_model_degrades_locally():
    class Node(BaseModel):
        name: str
        children: List["Node"] = Field(default_factory=list)

    Node.model_rebuild()
    descriptor = describe(Node)
    assert descriptor.kind == "object"
    child = descriptor.properties["children"].item_type
    assert child.kind == "unknown"
    assert "recursive" in child.reason


def test_malformed_definitions_never_raise():
    for bad in (None, {"type": "object", "properties": ["a"]}, {"$ref": "#/missing"}):
        descriptor = describe(bad)
        assert isinstance(descriptor, TypeDescriptor)
        assert descriptor.kind == "unknown"
        assert descriptor.reason


def test_unsupported_keyword_is_local_unknown():
    schema = {
        "type": "object",
        "properties": {
            "ok": {"type": "boolean"},
            "odd": {"not": {"type": "string"}},
        },
        "required": ["ok"],
    }
    descriptor = describe(schema)
    assert descriptor.kind == "object"
    assert descriptor.properties["ok"].kind == "boolean"
    assert descriptor.properties["odd"].kind == "unknown"
    assert descriptor.properties["odd"].optional is True


def test_camel_case_wire_keys():
    schema = {
        "type": "object",
        "properties": {
            "tags": {"type": "array", "items": {"enum": ["a", "b"]}},
            "size": {"type": "integer", "default": 3},
            "extra": {"type": "object", "additionalProperties": {"type": "string"}},
        },
        "required": ["tags"],
    }
    descriptor = describe(schema)

    wire = descriptor.to_dict(camel_case=True)["properties"]
    assert wire["tags"]["itemType"]["enumValues"] == ["a", "b"]
    assert "item_type" not in wire["tags"]
    assert wire["size"]["defaultValue"] == 3
    assert wire["extra"]["valueType"]["kind"] == "string"

    plain = descriptor.to_dict()["properties"]
    assert plain["tags"]["item_type"]["enum_values"] == ["a", "b"]
    assert plain["size"]["default_value"] == 3
