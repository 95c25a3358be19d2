from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_title(value: str) -> str:
    s = value.strip()
    if not s:
        raise ValueError("title must not be blank")
    return s


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy milk",
                "completed": False,
            }
        }
    )

    title: str = Field(..., description="Title of the todo")
    completed: bool = Field(default=False, description="Completion status of the todo")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and reject blank titles.
        """
        return _clean_title(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields are optional; only fields present in the request body are applied.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "completed": True,
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Title of the todo")
    completed: Optional[bool] = Field(default=None, description="Completion status of the todo")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_title(v)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "1737800130123",
                "title": "Buy milk",
                "completed": False,
            }
        }
    )

    id: str = Field(..., description="Auto-generated ID of the todo")
    title: str = Field(..., description="Title of the todo")
    completed: bool = Field(..., description="Completion status of the todo")
