"""Kullanici ayarlari (config) ve diagram gorunum filtresi endpoint'leri."""
from typing import Any, Optional
from fastapi import APIRouter, Body, Response, status
from diagramsync.routers.deps import Storage
from diagramsync.schemas.diagram import ChartConfig, DiagramFilter
from diagramsync.exceptions import DiagramFilterNotFoundException

router = APIRouter(prefix="/api", tags=["Settings"])


@router.get("/config", response_model=Optional[ChartConfig])
async def get_config(storage: Storage):
    """Hic kaydedilmemisse null doner."""
    return await storage.get_config()


@router.patch("/config", response_model=ChartConfig)
async def update_config(storage: Storage, data: dict[str, Any] = Body(...)):
    """Mevcut ayarlarin ustune merge eder."""
    await storage.update_config(data)
    return await storage.get_config()


@router.get("/diagrams/{diagram_id}/filter", response_model=DiagramFilter)
async def get_diagram_filter(diagram_id: str, storage: Storage):
    diagram_filter = await storage.get_diagram_filter(diagram_id)
    if diagram_filter is None:
        raise DiagramFilterNotFoundException(diagram_id)
    return diagram_filter


@router.put("/diagrams/{diagram_id}/filter", response_model=DiagramFilter)
async def put_diagram_filter(diagram_id: str, storage: Storage, data: dict[str, Any] = Body(...)):
    await storage.update_diagram_filter(diagram_id, data)
    return await storage.get_diagram_filter(diagram_id)


@router.delete("/diagrams/{diagram_id}/filter", status_code=status.HTTP_204_NO_CONTENT)
async def delete_diagram_filter(diagram_id: str, storage: Storage):
    await storage.delete_diagram_filter(diagram_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
