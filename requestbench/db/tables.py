"""SQLAlchemy ORM models for the embedded key-value backend.

A single table holds every record; the key encodes what the record is::

    workspace:{workspace_id}                -> Workspace JSON
    item:{workspace_id}:{item_id}           -> Folder / HttpRequest JSON

Uses SQLAlchemy 2.0 declarative style with ``Mapped`` type annotations.  The
schema is created on first use (``Base.metadata.create_all``).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Timezone-aware timestamp type for all datetime columns.
TimestampTZ = DateTime(timezone=True)


class Base(DeclarativeBase):
    """Declarative base with naming convention for constraints."""

    pass


# Apply naming convention to the metadata for deterministic constraint names.
Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}


class StorageEntry(Base):
    __tablename__ = "storage_entries"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TimestampTZ, server_default=func.now(), onupdate=func.now())
