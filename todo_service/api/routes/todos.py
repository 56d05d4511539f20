from __future__ import annotations

from fastapi import APIRouter, Response, status

from todo_service.schemas.todo import Todo, TodoCreate, TodoUpdate
from todo_service.services.todo_repository import TodoRepository

router = APIRouter(prefix="/todos", tags=["Todos"])

repository = TodoRepository()


@router.get("", response_model=list[Todo])
def list_todos(response: Response) -> list[Todo]:
    """List all TODO items; the total is exposed in X-Total-Count."""
    todos = repository.list_all()
    response.headers["X-Total-Count"] = str(len(todos))
    return todos


@router.post("", response_model=Todo, status_code=status.HTTP_201_CREATED)
def create_todo(payload: TodoCreate) -> Todo:
    return repository.create(payload)


@router.get("/{todo_id}", response_model=Todo)
def get_todo(todo_id: int) -> Todo:
    return repository.get(todo_id)


@router.patch("/{todo_id}", response_model=Todo)
def update_todo(todo_id: int, payload: TodoUpdate) -> Todo:
    return repository.update(todo_id, payload)


@router.delete("/{todo_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_todo(todo_id: int) -> Response:
    repository.delete(todo_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
