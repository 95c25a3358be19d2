from __future__ import annotations


class TodoError(Exception):
    """Base class for errors raised by the todo service."""


# PUBLIC_INTERFACE
class NotFound(TodoError):
    """The requested todo id has no record."""

    def __init__(self, todo_id: str) -> None:
        super().__init__(f"Todo not found: {todo_id!r}")
        self.todo_id = todo_id


# PUBLIC_INTERFACE
class StorageError(TodoError):
    """The backing store connection failed, timed out, or returned an error."""


# PUBLIC_INTERFACE
class ValidationError(TodoError):
    """A required field is missing or blank."""
