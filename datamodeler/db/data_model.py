import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


def new_id() -> str:
    return str(uuid.uuid4())


class WarehouseConnection(Base):
    """Databricks SQL warehouse credentials."""

    __tablename__ = "warehouse_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    host: Mapped[str] = mapped_column(String(255), nullable=False)
    http_path: Mapped[str] = mapped_column(String(512), nullable=False)
    token: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class DataModelEntry(Base):
    __tablename__ = "data_models"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    group_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    connection_id: Mapped[str | None] = mapped_column(ForeignKey("warehouse_connections.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Either a JSON condition list or the manual-override object.
    filters_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_group_by_all: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow
    )


class DataModelTableEntry(Base):
    __tablename__ = "data_model_tables"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    model_id: Mapped[str] = mapped_column(ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    table_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    schema_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    alias: Mapped[str | None] = mapped_column(String(255), nullable=True)
    columns_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    selected_columns_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    x: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    y: Mapped[float] = mapped_column(Float, default=0, nullable=False)


class DataModelRelationshipEntry(Base):
    __tablename__ = "data_model_relationships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    model_id: Mapped[str] = mapped_column(ForeignKey("data_models.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    from_table_id: Mapped[str] = mapped_column(ForeignKey("data_model_tables.id", ondelete="CASCADE"), nullable=False)
    to_table_id: Mapped[str] = mapped_column(ForeignKey("data_model_tables.id", ondelete="CASCADE"), nullable=False)
    # Holds the `__JSON__:` encoded pair list for composite keys.
    from_column: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_column: Mapped[str | None] = mapped_column(String(255), nullable=True)
    join_type: Mapped[str] = mapped_column(String(16), nullable=False)
    cardinality: Mapped[str] = mapped_column(String(16), nullable=False)
