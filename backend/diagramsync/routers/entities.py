"""
Diagram content routers (tables, relationships, dependencies, areas, custom types).

Her content turu icin ayni endpoint seti uretilir. GET / PATCH yanitlari
satirin version'ini ETag olarak doner; PATCH'te If-Match veya
expected_version verilirse eski version ile yazma 409 Conflict doner.
"""
from typing import Any, Optional
from fastapi import APIRouter, Body, Header, Response, status
from diagramsync.routers.deps import Storage
from diagramsync.schemas.diagram import EntityPatch
from diagramsync.storage.base import (
    AREAS,
    CUSTOM_TYPES,
    DEPENDENCIES,
    RELATIONSHIPS,
    TABLES,
    EntityKind,
    coerce_entity,
)
from diagramsync.utils.logging_config import diagram_logger
from diagramsync.exceptions import EntityNotFoundException, ValidationException


def parse_if_match(value: Optional[str]) -> Optional[int]:
    """'"3"', 'W/"3"' veya '3' -> 3"""
    if value is None:
        return None
    raw = value.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationException("If-Match header must carry a version number", {"if_match": value})


def set_etag(response: Response, version: Optional[int]) -> None:
    if version is not None:
        response.headers["ETag"] = f'"{version}"'


def build_entity_router(kind: EntityKind, path: str, allow_put: bool = False) -> APIRouter:
    router = APIRouter(prefix=f"/api/diagrams/{{diagram_id}}/{path}", tags=[kind.label.title()])
    snapshot = kind.snapshot

    @router.get("", response_model=list[snapshot])
    async def list_entities(diagram_id: str, storage: Storage):
        return await storage.list_entities(kind, diagram_id)

    @router.post("", response_model=snapshot, status_code=status.HTTP_201_CREATED)
    async def add_entity(diagram_id: str, storage: Storage, response: Response, data: dict[str, Any] = Body(...)):
        entity = coerce_entity(kind, data)
        await storage.add_entity(kind, diagram_id, entity)
        set_etag(response, await storage.get_entity_version(kind, diagram_id, entity.id))
        diagram_logger.debug(
            "Entity added",
            extra={"kind": kind.name, "diagram_id": diagram_id, "entity_id": entity.id},
        )
        return entity

    @router.delete("", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_all_entities(diagram_id: str, storage: Storage):
        """Diagram'a ait bu turdeki tum kayitlari sil."""
        await storage.delete_diagram_entities(kind, diagram_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.get("/{entity_id}", response_model=snapshot)
    async def get_entity(diagram_id: str, entity_id: str, storage: Storage, response: Response):
        entity = await storage.get_entity(kind, diagram_id, entity_id)
        if entity is None:
            raise EntityNotFoundException(kind.label, entity_id)
        set_etag(response, await storage.get_entity_version(kind, diagram_id, entity_id))
        return entity

    @router.patch("/{entity_id}", response_model=snapshot)
    async def update_entity(
        diagram_id: str,
        entity_id: str,
        patch: EntityPatch,
        storage: Storage,
        response: Response,
        if_match: Optional[str] = Header(None),
    ):
        """
        Merge-patch: gonderilen alanlar ustune yazar, digerleri korunur.

        Raises:
            EntityNotFoundException: Kayit bulunamazsa
            ConflictException: Beklenen version guncel degilse
        """
        if await storage.get_entity(kind, diagram_id, entity_id) is None:
            raise EntityNotFoundException(kind.label, entity_id)

        expected = patch.expected_version if patch.expected_version is not None else parse_if_match(if_match)
        await storage.update_entity(kind, entity_id, patch.attributes, expected_version=expected)

        set_etag(response, await storage.get_entity_version(kind, diagram_id, entity_id))
        return await storage.get_entity(kind, diagram_id, entity_id)

    if allow_put:
        @router.put("/{entity_id}", response_model=snapshot)
        async def put_entity(
            diagram_id: str,
            entity_id: str,
            storage: Storage,
            response: Response,
            data: dict[str, Any] = Body(...),
        ):
            """Upsert: kayit yoksa olusturulur, varsa payload tamamen degistirilir."""
            entity = coerce_entity(kind, {**data, "id": data.get("id", entity_id)})
            if entity.id != entity_id:
                raise ValidationException("Body id does not match the path", {"id": entity.id})
            await storage.put_entity(kind, diagram_id, entity)
            set_etag(response, await storage.get_entity_version(kind, diagram_id, entity_id))
            return entity

    @router.delete("/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_entity(diagram_id: str, entity_id: str, storage: Storage):
        await storage.delete_entity(kind, diagram_id, entity_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


tables_router = build_entity_router(TABLES, "tables", allow_put=True)
relationships_router = build_entity_router(RELATIONSHIPS, "relationships")
dependencies_router = build_entity_router(DEPENDENCIES, "dependencies")
areas_router = build_entity_router(AREAS, "areas")
custom_types_router = build_entity_router(CUSTOM_TYPES, "custom-types")

entity_routers = [tables_router, relationships_router, dependencies_router, areas_router, custom_types_router]
