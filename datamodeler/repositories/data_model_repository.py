import json
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from datamodeler.db.data_model import (
    DataModelEntry,
    DataModelRelationshipEntry,
    DataModelTableEntry,
    new_id,
)
from datamodeler.graph.loader import DataModelRecord, RelationshipRecord, TableRecord
from .base import AsyncBaseRepository


class DataModelRepository(AsyncBaseRepository[DataModelEntry]):
    """
    Stores models as a header row plus table and relationship rows. Saving
    replaces every table and relationship row of the model; table ids are
    regenerated and relationship endpoints remapped onto them.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, DataModelEntry)

    async def list_for_group(self, group_id: str) -> List[DataModelEntry]:
        query = (
            select(DataModelEntry)
            .filter(DataModelEntry.group_id == group_id)
            .order_by(DataModelEntry.created_at.desc())
        )
        result = await self._session.scalars(query)
        return list(result.all())

    async def get_model(self, model_id: str) -> Optional[DataModelRecord]:
        entry = await self.get_by_id(model_id)
        if entry is None:
            return None

        tables = await self._session.scalars(
            select(DataModelTableEntry)
            .filter(DataModelTableEntry.model_id == model_id)
            .order_by(DataModelTableEntry.position)
        )
        relationships = await self._session.scalars(
            select(DataModelRelationshipEntry)
            .filter(DataModelRelationshipEntry.model_id == model_id)
            .order_by(DataModelRelationshipEntry.position)
        )

        return DataModelRecord(
            id=entry.id,
            name=entry.name,
            description=entry.description,
            group_id=entry.group_id,
            connection_id=entry.connection_id,
            tables=[
                TableRecord(
                    id=table.id,
                    table_name=table.table_name,
                    schema_path=table.schema_name,
                    alias=table.alias,
                    columns=_loads(table.columns_json),
                    selected_columns=_loads(table.selected_columns_json),
                    x=table.x,
                    y=table.y,
                )
                for table in tables.all()
            ],
            relationships=[
                RelationshipRecord(
                    id=relationship.id,
                    from_table_id=relationship.from_table_id,
                    to_table_id=relationship.to_table_id,
                    from_column=relationship.from_column,
                    to_column=relationship.to_column,
                    join_type=relationship.join_type,
                    cardinality=relationship.cardinality,
                )
                for relationship in relationships.all()
            ],
            filters=_loads(entry.filters_json),
            is_group_by_all=entry.is_group_by_all,
        )

    async def replace_model(self, record: DataModelRecord) -> DataModelRecord:
        entry = await self.get_by_id(record.id) if record.id else None
        if entry is None:
            entry = self.add(DataModelEntry(id=record.id or new_id()))
        else:
            await self._session.execute(
                delete(DataModelRelationshipEntry).where(DataModelRelationshipEntry.model_id == entry.id)
            )
            await self._session.execute(
                delete(DataModelTableEntry).where(DataModelTableEntry.model_id == entry.id)
            )

        entry.name = record.name or ""
        entry.description = record.description
        entry.group_id = record.group_id or ""
        entry.connection_id = record.connection_id
        entry.is_group_by_all = record.is_group_by_all

        stored_ids: Dict[str, str] = {}
        for position, table in enumerate(record.tables):
            row = DataModelTableEntry(
                id=new_id(),
                model_id=entry.id,
                position=position,
                table_name=table.table_name,
                schema_name=table.schema_path,
                alias=table.alias,
                columns_json=_dumps(table.columns),
                selected_columns_json=_dumps(table.selected_columns),
                x=table.x or 0,
                y=table.y or 0,
            )
            stored_ids.setdefault(table.id, row.id)
            self.add(row)
        entry.filters_json = _dumps(_remap_filters(record.filters, stored_ids))
        await self.flush()

        for position, relationship in enumerate(record.relationships):
            from_id = stored_ids.get(relationship.from_table_id)
            to_id = stored_ids.get(relationship.to_table_id)
            if from_id is None or to_id is None:
                continue
            self.add(
                DataModelRelationshipEntry(
                    id=new_id(),
                    model_id=entry.id,
                    position=position,
                    from_table_id=from_id,
                    to_table_id=to_id,
                    from_column=relationship.from_column,
                    to_column=relationship.to_column,
                    join_type=relationship.join_type,
                    cardinality=relationship.cardinality,
                )
            )

        await self.flush()
        stored = await self.get_model(entry.id)
        if stored is None:
            raise RuntimeError(f"Data model {entry.id} was not persisted.")
        return stored

    async def delete_model(self, model_id: str) -> bool:
        entry = await self.get_by_id(model_id)
        if entry is None:
            return False
        await self._session.execute(
            delete(DataModelRelationshipEntry).where(DataModelRelationshipEntry.model_id == model_id)
        )
        await self._session.execute(
            delete(DataModelTableEntry).where(DataModelTableEntry.model_id == model_id)
        )
        await self.delete(entry)
        await self.flush()
        return True


def _remap_filters(filters: Any, stored_ids: Dict[str, str]) -> Any:
    """Point filter conditions at the regenerated table ids."""
    if isinstance(filters, dict):
        return {**filters, "conditions": _remap_filters(filters.get("conditions") or [], stored_ids)}
    if isinstance(filters, list):
        return [
            {**condition, "tableId": stored_ids.get(condition.get("tableId"), condition.get("tableId"))}
            if isinstance(condition, dict)
            else condition
            for condition in filters
        ]
    return filters


def _dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value)


def _loads(value: Optional[str]) -> Any:
    if not value:
        return None
    return json.loads(value)
