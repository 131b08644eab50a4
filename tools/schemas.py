"""Declarative tool interface schemas."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final, TypeVar

from pydantic import BaseModel, Field, field_validator

AUTHORIZED_TYPES: Final[tuple[str, ...]] = (
    "string",
    "boolean",
    "integer",
    "number",
    "image",
    "audio",
    "array",
    "object",
    "any",
    "null",
)


TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


def _check_type(value: str) -> str:
    if value not in AUTHORIZED_TYPES:
        raise ValueError(
            f"invalid type '{value}', expected one of {list(AUTHORIZED_TYPES)}"
        )
    return value


class ToolInput(BaseSchema):
    type: str
    description: str = Field(min_length=1)
    nullable: bool = False

    @field_validator("type")
    @classmethod
    def type_is_authorized(cls, value: str) -> str:
        return _check_type(value)


class ToolSpec(BaseSchema):
    """The interface a tool author registers next to the callable."""

    name: str
    description: str = Field(min_length=1)
    inputs: dict[str, ToolInput] = Field(default_factory=dict)
    output_type: str

    @field_validator("name")
    @classmethod
    def name_is_identifier(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"tool name '{value}' is not a valid identifier")
        return value

    @field_validator("inputs")
    @classmethod
    def input_names_are_identifiers(
        cls, value: dict[str, ToolInput]
    ) -> dict[str, ToolInput]:
        for input_name in value:
            if not input_name.isidentifier():
                raise ValueError(f"input name '{input_name}' is not a valid identifier")
        return value

    @field_validator("output_type")
    @classmethod
    def output_type_is_authorized(cls, value: str) -> str:
        return _check_type(value)
