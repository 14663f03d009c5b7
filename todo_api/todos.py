"""
Todo CRUD endpoints. Every route sits behind require_auth (router-level dependency),
so an unauthenticated request is rejected before the store is touched.
"""
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from todo_api.auth import require_auth
from todo_api.database import get_db
from todo_api.store import ValidationError, create_todo, delete_todo, list_todos, update_todo

router = APIRouter(prefix="/api/todos", dependencies=[Depends(require_auth)])


def _json_object(body) -> dict:
    if not isinstance(body, dict):
        raise ValidationError("JSON object body required")
    return body


@router.get("")
def get_todos(db: Session = Depends(get_db)):
    """All todos, newest first (shared list)."""
    return [t.to_dict() for t in list_todos(db)]


@router.post("", status_code=201)
def post_todo(body=Body(None), db: Session = Depends(get_db)):
    """Create from {"text": ...}; text is trimmed and must be non-empty."""
    todo = create_todo(db, _json_object(body).get("text"))
    return JSONResponse(todo.to_dict(), status_code=201)


@router.patch("/{todo_id}")
def patch_todo(todo_id: int, body=Body(None), db: Session = Depends(get_db)):
    """Partial update of text and/or completed."""
    body = _json_object(body)
    todo = update_todo(db, todo_id, text=body.get("text"), completed=body.get("completed"))
    return todo.to_dict()


@router.delete("/{todo_id}")
def remove_todo(todo_id: int, db: Session = Depends(get_db)):
    delete_todo(db, todo_id)
    return {"ok": True}
