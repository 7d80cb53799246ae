from datetime import datetime, timezone
from typing import Any
from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from diagramsync.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Diagram(Base):
    """Diagram kaydi - alt icerik ayri content tablolarinda tutulur"""
    __tablename__ = "diagrams"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    database_type: Mapped[str] = mapped_column(String(32), nullable=False)
    database_edition: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)


class DiagramContentMixin:
    """
    Content table ortak kolonlari.
    payload: opaque entity snapshot; version: optimistic concurrency sayaci.
    """

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    diagram_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class DBTableRow(DiagramContentMixin, Base):
    __tablename__ = "db_tables"


class DBRelationshipRow(DiagramContentMixin, Base):
    __tablename__ = "db_relationships"


class DBDependencyRow(DiagramContentMixin, Base):
    __tablename__ = "db_dependencies"


class AreaRow(DiagramContentMixin, Base):
    __tablename__ = "areas"


class DBCustomTypeRow(DiagramContentMixin, Base):
    __tablename__ = "db_custom_types"
