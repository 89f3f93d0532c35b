"""Pydantic models describing catalog entries."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationKey(BaseModel):
    """``(service_name, operation)`` pair identifying an internal operation."""

    service_name: str
    operation: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.service_name}.{self.operation}"


class OperationEntry(BaseModel):
    """A registered operation and its declarative parameter definition."""

    key: OperationKey
    definition: Any = Field(..., description="Pydantic model, type or JSON Schema dict")
    description: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)
