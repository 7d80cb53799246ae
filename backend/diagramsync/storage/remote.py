"""
Remote Relational Store

Storage Contract'i 8 mantiksal tablo uzerine cevirir: diagrams, her alt varlik
turu icin bir content table, user_configs ve diagram_filters.
Her sorgu current user_id ile scope'lanir; baska kullanicinin satirlarina
bu sinif uzerinden erismek yapisal olarak imkansizdir.

Bagimsiz statement'lar kendi session'larinda calisir ki asyncio.gather ile
paralel gonderilebilsin. Rename ve delete cascade'leri tek transaction'dir.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diagramsync.exceptions import ConflictException
from diagramsync.models import (
    AreaRow,
    DBCustomTypeRow,
    DBDependencyRow,
    DBRelationshipRow,
    DBTableRow,
    Diagram as DiagramRow,
    DiagramFilterRow,
    UserConfig,
)
from diagramsync.schemas.diagram import (
    ChartConfig,
    Diagram,
    DiagramFilter,
    DiagramQueryOptions,
    DiagramUpdate,
    EntitySnapshot,
)
from diagramsync.storage.base import (
    ENTITY_KINDS,
    EntityInput,
    EntityKind,
    StorageBackend,
    coerce_config,
    coerce_diagram_update,
    coerce_entity,
    coerce_filter,
    merge_payload,
    requested_kinds,
)
from diagramsync.storage.errors import translate_error
from diagramsync.utils.logging_config import storage_logger

T = TypeVar("T")

CONTENT_MODELS = {
    "db_tables": DBTableRow,
    "db_relationships": DBRelationshipRow,
    "db_dependencies": DBDependencyRow,
    "areas": AreaRow,
    "db_custom_types": DBCustomTypeRow,
}

# Diagram id'sini referans eden tum tablolar (rename / delete cascade)
DIAGRAM_REFERENCING_MODELS = (*CONTENT_MODELS.values(), DiagramFilterRow)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_diagram(row: DiagramRow) -> Diagram:
    return Diagram(
        id=row.id,
        name=row.name,
        database_type=row.database_type,
        database_edition=row.database_edition,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RemoteStorage(StorageBackend):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], user_id: str):
        self._session_factory = session_factory
        self.user_id = user_id

    # ==================== Helpers ====================

    async def _run(self, action: str, work: Callable[[AsyncSession], Awaitable[T]], commit: bool = False) -> T:
        """Tek session icinde calistir; her backend hatasi mesajiyla birlikte yukari firlatilir."""
        try:
            async with self._session_factory() as session:
                result = await work(session)
                if commit:
                    await session.commit()
                return result
        except (SQLAlchemyError, OSError) as e:
            raise translate_error(e, action) from e

    async def _write(self, action: str, statement) -> int:
        async def work(session: AsyncSession) -> int:
            result = await session.execute(statement, execution_options={"synchronize_session": False})
            return result.rowcount

        return await self._run(action, work, commit=True)

    async def _fetch_all(self, action: str, statement) -> list[Any]:
        async def work(session: AsyncSession) -> list[Any]:
            result = await session.execute(statement)
            return list(result.scalars().all())

        return await self._run(action, work)

    async def _fetch_one(self, action: str, statement) -> Any:
        async def work(session: AsyncSession) -> Any:
            result = await session.execute(statement)
            return result.scalar_one_or_none()

        return await self._run(action, work)

    def _content_model(self, kind: EntityKind):
        return CONTENT_MODELS[kind.name]

    # ==================== Config ====================

    async def get_config(self) -> Optional[ChartConfig]:
        row = await self._fetch_one(
            "get config",
            select(UserConfig).where(UserConfig.user_id == self.user_id),
        )
        return ChartConfig.model_validate(row.settings) if row else None

    async def update_config(self, config: Union[ChartConfig, Mapping[str, Any]]) -> None:
        existing = await self.get_config()
        base = existing.model_dump(mode="json") if existing else {"default_diagram_id": ""}
        merged = {**base, **coerce_config(config)}

        async def work(session: AsyncSession) -> None:
            await session.merge(UserConfig(user_id=self.user_id, settings=merged, updated_at=_now()))

        await self._run("upsert config", work, commit=True)

    # ==================== Diagram filter ====================

    async def get_diagram_filter(self, diagram_id: str) -> Optional[DiagramFilter]:
        row = await self._fetch_one(
            "get diagram filter",
            select(DiagramFilterRow).where(
                DiagramFilterRow.user_id == self.user_id,
                DiagramFilterRow.diagram_id == diagram_id,
            ),
        )
        return DiagramFilter.model_validate(row.filter) if row else None

    async def update_diagram_filter(self, diagram_id: str, filter: Union[DiagramFilter, Mapping[str, Any]]) -> None:
        payload = coerce_filter(filter)

        async def work(session: AsyncSession) -> None:
            await session.merge(
                DiagramFilterRow(diagram_id=diagram_id, user_id=self.user_id, filter=payload, updated_at=_now())
            )

        await self._run("upsert diagram filter", work, commit=True)

    async def delete_diagram_filter(self, diagram_id: str) -> None:
        await self._write(
            "delete from diagram_filters",
            delete(DiagramFilterRow).where(
                DiagramFilterRow.user_id == self.user_id,
                DiagramFilterRow.diagram_id == diagram_id,
            ),
        )

    # ==================== Diagrams ====================

    async def add_diagram(self, diagram: Diagram) -> None:
        now = _now()
        await self._write(
            "insert diagram",
            insert(DiagramRow).values(
                id=diagram.id,
                user_id=self.user_id,
                name=diagram.name,
                database_type=diagram.database_type.value,
                database_edition=diagram.database_edition,
                created_at=diagram.created_at,
                updated_at=diagram.updated_at,
            ),
        )

        # Tur basina tum insert'ler paralel; atomik degil, yarida kalan insert'ler kalici olur
        for kind in ENTITY_KINDS:
            entities = getattr(diagram, kind.diagram_field) or []
            if entities:
                await asyncio.gather(*(self.add_entity(kind, diagram.id, entity) for entity in entities))

        await self._write(
            "mark diagram inserted",
            update(DiagramRow)
            .where(DiagramRow.user_id == self.user_id, DiagramRow.id == diagram.id)
            .values(updated_at=now),
        )
        storage_logger.info(
            "Diagram added",
            extra={"diagram_id": diagram.id, "user_id": self.user_id},
        )

    async def _hydrate(self, diagram: Diagram, kinds: list[EntityKind]) -> Diagram:
        collections = await asyncio.gather(*(self.list_entities(kind, diagram.id) for kind in kinds))
        for kind, entities in zip(kinds, collections):
            setattr(diagram, kind.diagram_field, entities)
        return diagram

    async def list_diagrams(self, options: Optional[DiagramQueryOptions] = None) -> list[Diagram]:
        rows = await self._fetch_all(
            "list diagrams",
            select(DiagramRow)
            .where(DiagramRow.user_id == self.user_id)
            .order_by(DiagramRow.updated_at.desc()),
        )
        diagrams = [to_diagram(row) for row in rows]

        kinds = requested_kinds(options)
        if not diagrams or not kinds:
            return diagrams

        await asyncio.gather(*(self._hydrate(diagram, kinds) for diagram in diagrams))
        return diagrams

    async def get_diagram(self, diagram_id: str, options: Optional[DiagramQueryOptions] = None) -> Optional[Diagram]:
        row = await self._fetch_one(
            "get diagram",
            select(DiagramRow).where(DiagramRow.user_id == self.user_id, DiagramRow.id == diagram_id),
        )
        if row is None:
            return None

        diagram = to_diagram(row)
        kinds = requested_kinds(options)
        if kinds:
            await self._hydrate(diagram, kinds)
        return diagram

    async def update_diagram(self, diagram_id: str, attributes: Union[DiagramUpdate, Mapping[str, Any]]) -> None:
        patch = coerce_diagram_update(attributes)
        supplied = patch.model_fields_set
        values: dict[str, Any] = {}

        if "name" in supplied and patch.name is not None:
            values["name"] = patch.name
        if "database_type" in supplied and patch.database_type is not None:
            values["database_type"] = patch.database_type.value
        if "database_edition" in supplied:
            values["database_edition"] = patch.database_edition
        if patch.updated_at is not None:
            values["updated_at"] = patch.updated_at

        if values:
            await self._write(
                "update diagram attributes",
                update(DiagramRow)
                .where(DiagramRow.user_id == self.user_id, DiagramRow.id == diagram_id)
                .values(**values),
            )

        if patch.id and patch.id != diagram_id:
            await self._rename_diagram(diagram_id, patch.id)

    async def _rename_diagram(self, old_id: str, new_id: str) -> None:
        """Diagram satiri once, sonra referans eden her tablo; hepsi tek transaction."""

        async def work(session: AsyncSession) -> None:
            async with session.begin():
                await session.execute(
                    update(DiagramRow)
                    .where(DiagramRow.user_id == self.user_id, DiagramRow.id == old_id)
                    .values(id=new_id),
                    execution_options={"synchronize_session": False},
                )
                for model in DIAGRAM_REFERENCING_MODELS:
                    await session.execute(
                        update(model)
                        .where(model.user_id == self.user_id, model.diagram_id == old_id)
                        .values(diagram_id=new_id),
                        execution_options={"synchronize_session": False},
                    )

        await self._run("update diagram id", work)
        storage_logger.info(
            "Diagram renamed",
            extra={"old_id": old_id, "new_id": new_id, "user_id": self.user_id},
        )

    async def delete_diagram(self, diagram_id: str) -> None:
        """Once cocuklar sonra parent; tek transaction."""

        async def work(session: AsyncSession) -> None:
            async with session.begin():
                for model in DIAGRAM_REFERENCING_MODELS:
                    await session.execute(
                        delete(model).where(model.user_id == self.user_id, model.diagram_id == diagram_id),
                        execution_options={"synchronize_session": False},
                    )
                await session.execute(
                    delete(DiagramRow).where(DiagramRow.user_id == self.user_id, DiagramRow.id == diagram_id),
                    execution_options={"synchronize_session": False},
                )

        await self._run("delete diagram", work)
        storage_logger.info(
            "Diagram deleted",
            extra={"diagram_id": diagram_id, "user_id": self.user_id},
        )

    # ==================== Content ====================

    async def add_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None:
        model = self._content_model(kind)
        snapshot = coerce_entity(kind, entity)
        await self._write(
            f"insert into {kind.name}",
            insert(model).values(
                id=snapshot.id,
                user_id=self.user_id,
                diagram_id=diagram_id,
                payload=snapshot.model_dump(mode="json"),
                version=1,
                created_at=_now(),
            ),
        )

    async def _get_content_row(self, kind: EntityKind, diagram_id: str, entity_id: str):
        model = self._content_model(kind)
        return await self._fetch_one(
            f"get {kind.name} {entity_id}",
            select(model).where(
                model.user_id == self.user_id,
                model.diagram_id == diagram_id,
                model.id == entity_id,
            ),
        )

    async def get_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[EntitySnapshot]:
        row = await self._get_content_row(kind, diagram_id, entity_id)
        return kind.snapshot.model_validate(row.payload) if row else None

    async def get_entity_version(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[int]:
        row = await self._get_content_row(kind, diagram_id, entity_id)
        return row.version if row else None

    async def _load_for_update(self, kind: EntityKind, entity_id: str):
        model = self._content_model(kind)
        return await self._fetch_one(
            f"load {kind.label} for update",
            select(model).where(model.user_id == self.user_id, model.id == entity_id),
        )

    async def update_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        attributes: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        row = await self._load_for_update(kind, entity_id)
        if row is None:
            return

        if expected_version is not None and row.version != expected_version:
            raise ConflictException(kind.label, entity_id, expected_version, row.version)

        model = self._content_model(kind)
        merged = merge_payload(row.payload, attributes)
        affected = await self._write(
            f"update {kind.name} {entity_id}",
            update(model)
            .where(
                model.user_id == self.user_id,
                model.id == entity_id,
                model.version == row.version,
            )
            .values(payload=merged, version=row.version + 1),
        )
        if affected == 0:
            # Okuma ile yazma arasinda baska bir yazar version'i ilerletti
            raise ConflictException(kind.label, entity_id, row.version)

    async def put_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None:
        model = self._content_model(kind)
        snapshot = coerce_entity(kind, entity)
        payload = snapshot.model_dump(mode="json")

        async def work(session: AsyncSession) -> None:
            result = await session.execute(
                select(model).where(model.user_id == self.user_id, model.id == snapshot.id)
            )
            row = result.scalar_one_or_none()
            if row is None:
                session.add(
                    model(
                        id=snapshot.id,
                        user_id=self.user_id,
                        diagram_id=diagram_id,
                        payload=payload,
                        version=1,
                        created_at=_now(),
                    )
                )
            else:
                row.diagram_id = diagram_id
                row.payload = payload
                row.version = row.version + 1

        await self._run(f"upsert into {kind.name}", work, commit=True)

    async def delete_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> None:
        model = self._content_model(kind)
        await self._write(
            f"delete from {kind.name}",
            delete(model).where(
                model.user_id == self.user_id,
                model.diagram_id == diagram_id,
                model.id == entity_id,
            ),
        )

    async def list_entities(self, kind: EntityKind, diagram_id: str) -> list[EntitySnapshot]:
        model = self._content_model(kind)
        rows = await self._fetch_all(
            f"fetch {kind.name} for diagram {diagram_id}",
            select(model)
            .where(model.user_id == self.user_id, model.diagram_id == diagram_id)
            .order_by(model.created_at, model.id),
        )
        return [kind.snapshot.model_validate(row.payload) for row in rows]

    async def delete_diagram_entities(self, kind: EntityKind, diagram_id: str) -> None:
        model = self._content_model(kind)
        await self._write(
            f"delete from {kind.name}",
            delete(model).where(model.user_id == self.user_id, model.diagram_id == diagram_id),
        )
