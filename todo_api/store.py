"""
Todo store access. One statement + commit per mutation; only called behind the auth guard.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from todo_api.models import Todo

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Bad input (empty text, nothing to update); maps to 400."""


class NotFound(Exception):
    """No todo with the given id; maps to 404."""


def _clean_text(text) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("text is required")
    return text.strip()


def list_todos(db: Session) -> list[Todo]:
    """Newest first; id breaks ties between rows created in the same clock tick."""
    return list(db.scalars(select(Todo).order_by(Todo.created_at.desc(), Todo.id.desc())))


def create_todo(db: Session, text) -> Todo:
    todo = Todo(text=_clean_text(text))
    db.add(todo)
    db.commit()
    db.refresh(todo)
    logger.info("todo created id=%s", todo.id)
    return todo


def update_todo(db: Session, todo_id: int, *, text=None, completed=None) -> Todo:
    """Partial update; at least one of text / completed must be given."""
    if text is None and completed is None:
        raise ValidationError("nothing to update")
    values = {}
    if text is not None:
        values["text"] = _clean_text(text)
    if completed is not None:
        if not isinstance(completed, bool):
            raise ValidationError("completed must be a boolean")
        values["completed"] = completed
    todo = db.get(Todo, todo_id)
    if todo is None:
        raise NotFound(f"todo {todo_id} not found")
    for field, value in values.items():
        setattr(todo, field, value)
    db.commit()
    db.refresh(todo)
    return todo


def delete_todo(db: Session, todo_id: int) -> None:
    result = db.execute(delete(Todo).where(Todo.id == todo_id))
    db.commit()
    if not result.rowcount:
        raise NotFound(f"todo {todo_id} not found")
    logger.info("todo deleted id=%s", todo_id)
