"""
SQLAlchemy model for the shared todo list (no per-user ownership column).
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Text, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Todo(Base):
    __tablename__ = "todos"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, server_default=func.now(), nullable=False, index=True
    )

    def to_dict(self) -> dict:
        created = self.created_at
        if created is not None and created.tzinfo is None:
            # SQLite hands back naive datetimes; values are stored as UTC
            created = created.replace(tzinfo=timezone.utc)
        return {
            "id": self.id,
            "text": self.text,
            "completed": self.completed,
            "created_at": created.isoformat() if created else None,
        }
