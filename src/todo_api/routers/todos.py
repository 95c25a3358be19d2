from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from ..errors import NotFound, StorageError
from ..repositories import Repository, get_repository
from ..schemas import TodoCreate, TodoOut, TodoUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/todos",
    tags=["todos"],
)

_NOT_FOUND = {"description": "Todo not found"}
_STORE_ERROR = {"description": "Backing store error"}


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found")


def _store_failure(message: str, exc: StorageError) -> HTTPException:
    logger.error("%s: %s", message, exc, exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new todo",
    responses={
        201: {"description": "Todo created successfully"},
        400: {"description": "Validation error"},
        500: _STORE_ERROR,
    },
)
def create_todo(payload: TodoCreate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    """
    Create a new Todo, store it and append its id to the index.
    """
    try:
        created = repo.create(payload)
    except StorageError as exc:
        raise _store_failure("Error creating todo", exc) from exc
    return TodoOut(**created)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TodoOut],
    summary="Get all todos",
    responses={200: {"description": "List of todos"}, 500: _STORE_ERROR},
)
def list_todos(repo: Repository = Depends(_get_repo)) -> List[TodoOut]:
    """
    List todos in creation order.
    """
    try:
        items = repo.list()
    except StorageError as exc:
        raise _store_failure("Error fetching todos", exc) from exc
    return [TodoOut(**it) for it in items]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get a todo by id",
    responses={200: {"description": "Todo found"}, 404: _NOT_FOUND, 500: _STORE_ERROR},
)
def get_todo(todo_id: str, repo: Repository = Depends(_get_repo)) -> TodoOut:
    try:
        item = repo.get(todo_id)
    except NotFound as exc:
        raise _not_found() from exc
    except StorageError as exc:
        raise _store_failure("Error fetching todo", exc) from exc
    return TodoOut(**item)


# PUBLIC_INTERFACE
@router.put(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update a todo",
    description="Update the fields supplied in the body; omitted fields keep their current value.",
    responses={200: {"description": "Todo updated"}, 404: _NOT_FOUND, 500: _STORE_ERROR},
)
def update_todo(todo_id: str, payload: TodoUpdate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    try:
        updated = repo.update(todo_id, payload)
    except NotFound as exc:
        raise _not_found() from exc
    except StorageError as exc:
        raise _store_failure("Error updating todo", exc) from exc
    return TodoOut(**updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a todo",
    responses={204: {"description": "Todo deleted"}, 404: _NOT_FOUND, 500: _STORE_ERROR},
)
def delete_todo(todo_id: str, repo: Repository = Depends(_get_repo)) -> Response:
    """
    Delete a Todo and drop its id from the index. Returns 204 on success, 404 if not found.
    """
    try:
        repo.delete(todo_id)
    except NotFound as exc:
        raise _not_found() from exc
    except StorageError as exc:
        raise _store_failure("Error deleting todo", exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
