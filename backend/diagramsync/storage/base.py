"""
Storage Contract

Her persistence backend'in (Remote relational / Local embedded) uymasi gereken arayuz.
Backend'ler sadece abstract primitive'leri implement eder; tur bazli isimli
operasyonlar (add_table, list_areas, ...) bu sinifta primitive'lere delege edilir.
Call site'lar hangi backend'in aktif oldugunu asla kontrol etmez.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from diagramsync.schemas.diagram import (
    Area,
    ChartConfig,
    DBCustomType,
    DBDependency,
    DBRelationship,
    DBTable,
    Diagram,
    DiagramFilter,
    DiagramQueryOptions,
    DiagramUpdate,
    EntitySnapshot,
)


@dataclass(frozen=True)
class EntityKind:
    """Bir content table turu ve domain tarafindaki karsiliklari."""
    name: str               # content table adi
    label: str              # log / hata mesajlari icin
    snapshot: type[EntitySnapshot]
    diagram_field: str      # Diagram uzerindeki collection alani
    option_flag: str        # DiagramQueryOptions flag'i


TABLES = EntityKind("db_tables", "table", DBTable, "tables", "include_tables")
RELATIONSHIPS = EntityKind("db_relationships", "relationship", DBRelationship, "relationships", "include_relationships")
DEPENDENCIES = EntityKind("db_dependencies", "dependency", DBDependency, "dependencies", "include_dependencies")
AREAS = EntityKind("areas", "area", Area, "areas", "include_areas")
CUSTOM_TYPES = EntityKind("db_custom_types", "custom type", DBCustomType, "custom_types", "include_custom_types")

ENTITY_KINDS: tuple[EntityKind, ...] = (TABLES, RELATIONSHIPS, DEPENDENCIES, AREAS, CUSTOM_TYPES)

EntityInput = Union[EntitySnapshot, Mapping[str, Any]]


def requested_kinds(options: Optional[DiagramQueryOptions]) -> list[EntityKind]:
    if options is None:
        return []
    return [kind for kind in ENTITY_KINDS if getattr(options, kind.option_flag)]


def coerce_entity(kind: EntityKind, entity: EntityInput) -> EntitySnapshot:
    if isinstance(entity, kind.snapshot):
        return entity
    if isinstance(entity, EntitySnapshot):
        return kind.snapshot.model_validate(entity.model_dump())
    return kind.snapshot.model_validate(dict(entity))


def entity_payload(kind: EntityKind, entity: EntityInput) -> dict[str, Any]:
    return coerce_entity(kind, entity).model_dump(mode="json")


def merge_payload(current: Mapping[str, Any], attributes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Shallow merge-patch: patch'teki alanlar ustune yazar, olmayanlar korunur.
    Row id'si payload uzerinden degistirilemez.
    """
    merged = {**current, **attributes}
    merged["id"] = current["id"]
    return merged


def coerce_diagram_update(attributes: Union[DiagramUpdate, Mapping[str, Any]]) -> DiagramUpdate:
    if isinstance(attributes, DiagramUpdate):
        return attributes
    return DiagramUpdate.model_validate(dict(attributes))


def coerce_config(config: Union[ChartConfig, Mapping[str, Any]]) -> dict[str, Any]:
    if isinstance(config, ChartConfig):
        return config.model_dump(mode="json", exclude_unset=True)
    return dict(config)


def coerce_filter(filter: Union[DiagramFilter, Mapping[str, Any]]) -> dict[str, Any]:
    if isinstance(filter, DiagramFilter):
        return filter.model_dump(mode="json")
    return dict(filter)


class StorageBackend(ABC):
    """Backend-agnostic storage capability."""

    # ==================== Config ====================

    @abstractmethod
    async def get_config(self) -> Optional[ChartConfig]: ...

    @abstractmethod
    async def update_config(self, config: Union[ChartConfig, Mapping[str, Any]]) -> None:
        """Mevcut ayarlarin ustune merge eder (wholesale overwrite degil)."""

    # ==================== Diagram filter ====================

    @abstractmethod
    async def get_diagram_filter(self, diagram_id: str) -> Optional[DiagramFilter]: ...

    @abstractmethod
    async def update_diagram_filter(
        self, diagram_id: str, filter: Union[DiagramFilter, Mapping[str, Any]]
    ) -> None: ...

    @abstractmethod
    async def delete_diagram_filter(self, diagram_id: str) -> None: ...

    # ==================== Diagrams ====================

    @abstractmethod
    async def add_diagram(self, diagram: Diagram) -> None: ...

    @abstractmethod
    async def list_diagrams(self, options: Optional[DiagramQueryOptions] = None) -> list[Diagram]:
        """En son guncellenen once; flag verilmezse hydrate edilmez."""

    @abstractmethod
    async def get_diagram(
        self, diagram_id: str, options: Optional[DiagramQueryOptions] = None
    ) -> Optional[Diagram]: ...

    @abstractmethod
    async def update_diagram(
        self, diagram_id: str, attributes: Union[DiagramUpdate, Mapping[str, Any]]
    ) -> None: ...

    @abstractmethod
    async def delete_diagram(self, diagram_id: str) -> None: ...

    # ==================== Content primitives ====================

    @abstractmethod
    async def add_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None: ...

    @abstractmethod
    async def get_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[EntitySnapshot]: ...

    @abstractmethod
    async def get_entity_version(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[int]: ...

    @abstractmethod
    async def update_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        attributes: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        """Read-merge-write. Satir yoksa no-op; version uyusmazsa ConflictException."""

    @abstractmethod
    async def put_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None: ...

    @abstractmethod
    async def delete_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> None: ...

    @abstractmethod
    async def list_entities(self, kind: EntityKind, diagram_id: str) -> list[EntitySnapshot]: ...

    @abstractmethod
    async def delete_diagram_entities(self, kind: EntityKind, diagram_id: str) -> None: ...

    # ==================== Tables ====================

    async def add_table(self, diagram_id: str, table: EntityInput) -> None:
        await self.add_entity(TABLES, diagram_id, table)

    async def get_table(self, diagram_id: str, table_id: str) -> Optional[DBTable]:
        return await self.get_entity(TABLES, diagram_id, table_id)

    async def update_table(self, table_id: str, attributes: Mapping[str, Any]) -> None:
        await self.update_entity(TABLES, table_id, attributes)

    async def put_table(self, diagram_id: str, table: EntityInput) -> None:
        await self.put_entity(TABLES, diagram_id, table)

    async def delete_table(self, diagram_id: str, table_id: str) -> None:
        await self.delete_entity(TABLES, diagram_id, table_id)

    async def list_tables(self, diagram_id: str) -> list[DBTable]:
        return await self.list_entities(TABLES, diagram_id)

    async def delete_diagram_tables(self, diagram_id: str) -> None:
        await self.delete_diagram_entities(TABLES, diagram_id)

    # ==================== Relationships ====================

    async def add_relationship(self, diagram_id: str, relationship: EntityInput) -> None:
        await self.add_entity(RELATIONSHIPS, diagram_id, relationship)

    async def get_relationship(self, diagram_id: str, relationship_id: str) -> Optional[DBRelationship]:
        return await self.get_entity(RELATIONSHIPS, diagram_id, relationship_id)

    async def update_relationship(self, relationship_id: str, attributes: Mapping[str, Any]) -> None:
        await self.update_entity(RELATIONSHIPS, relationship_id, attributes)

    async def delete_relationship(self, diagram_id: str, relationship_id: str) -> None:
        await self.delete_entity(RELATIONSHIPS, diagram_id, relationship_id)

    async def list_relationships(self, diagram_id: str) -> list[DBRelationship]:
        return await self.list_entities(RELATIONSHIPS, diagram_id)

    async def delete_diagram_relationships(self, diagram_id: str) -> None:
        await self.delete_diagram_entities(RELATIONSHIPS, diagram_id)

    # ==================== Dependencies ====================

    async def add_dependency(self, diagram_id: str, dependency: EntityInput) -> None:
        await self.add_entity(DEPENDENCIES, diagram_id, dependency)

    async def get_dependency(self, diagram_id: str, dependency_id: str) -> Optional[DBDependency]:
        return await self.get_entity(DEPENDENCIES, diagram_id, dependency_id)

    async def update_dependency(self, dependency_id: str, attributes: Mapping[str, Any]) -> None:
        await self.update_entity(DEPENDENCIES, dependency_id, attributes)

    async def delete_dependency(self, diagram_id: str, dependency_id: str) -> None:
        await self.delete_entity(DEPENDENCIES, diagram_id, dependency_id)

    async def list_dependencies(self, diagram_id: str) -> list[DBDependency]:
        return await self.list_entities(DEPENDENCIES, diagram_id)

    async def delete_diagram_dependencies(self, diagram_id: str) -> None:
        await self.delete_diagram_entities(DEPENDENCIES, diagram_id)

    # ==================== Areas ====================

    async def add_area(self, diagram_id: str, area: EntityInput) -> None:
        await self.add_entity(AREAS, diagram_id, area)

    async def get_area(self, diagram_id: str, area_id: str) -> Optional[Area]:
        return await self.get_entity(AREAS, diagram_id, area_id)

    async def update_area(self, area_id: str, attributes: Mapping[str, Any]) -> None:
        await self.update_entity(AREAS, area_id, attributes)

    async def delete_area(self, diagram_id: str, area_id: str) -> None:
        await self.delete_entity(AREAS, diagram_id, area_id)

    async def list_areas(self, diagram_id: str) -> list[Area]:
        return await self.list_entities(AREAS, diagram_id)

    async def delete_diagram_areas(self, diagram_id: str) -> None:
        await self.delete_diagram_entities(AREAS, diagram_id)

    # ==================== Custom types ====================

    async def add_custom_type(self, diagram_id: str, custom_type: EntityInput) -> None:
        await self.add_entity(CUSTOM_TYPES, diagram_id, custom_type)

    async def get_custom_type(self, diagram_id: str, custom_type_id: str) -> Optional[DBCustomType]:
        return await self.get_entity(CUSTOM_TYPES, diagram_id, custom_type_id)

    async def update_custom_type(self, custom_type_id: str, attributes: Mapping[str, Any]) -> None:
        await self.update_entity(CUSTOM_TYPES, custom_type_id, attributes)

    async def delete_custom_type(self, diagram_id: str, custom_type_id: str) -> None:
        await self.delete_entity(CUSTOM_TYPES, diagram_id, custom_type_id)

    async def list_custom_types(self, diagram_id: str) -> list[DBCustomType]:
        return await self.list_entities(CUSTOM_TYPES, diagram_id)

    async def delete_diagram_custom_types(self, diagram_id: str) -> None:
        await self.delete_diagram_entities(CUSTOM_TYPES, diagram_id)
