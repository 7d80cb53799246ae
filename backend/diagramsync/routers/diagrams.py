"""
Diagrams Router for DiagramSync

Diagram CRUD endpoint'leri. Aktif backend (remote / local) istegin
auth durumuna gore Storage Selector tarafindan secilir.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Response, status
from diagramsync.routers.deps import OptionalUser, Storage
from diagramsync.schemas.diagram import Diagram, DiagramQueryOptions, DiagramUpdate
from diagramsync.utils.logging_config import diagram_logger
from diagramsync.exceptions import DiagramNotFoundException

router = APIRouter(prefix="/api/diagrams", tags=["Diagrams"])


@router.get("", response_model=list[Diagram], response_model_exclude_none=True)
async def list_diagrams(
    storage: Storage,
    options: Annotated[DiagramQueryOptions, Depends()],
):
    """En son guncellenen once. include_* flag'leri verilmezse alt icerik yuklenmez."""
    return await storage.list_diagrams(options)


@router.post("", response_model=Diagram, status_code=status.HTTP_201_CREATED)
async def create_diagram(
    data: Diagram,
    storage: Storage,
    user: OptionalUser,
):
    """Diagram'i alt icerigiyle (tables, relationships, ...) birlikte olustur."""
    await storage.add_diagram(data)

    diagram_logger.info(
        "Diagram creation request completed",
        extra={
            "diagram_id": data.id,
            "diagram_name": data.name,
            "owner_id": user.id if user else None,
        }
    )
    return await storage.get_diagram(data.id, DiagramQueryOptions.all())


@router.get("/{diagram_id}", response_model=Diagram, response_model_exclude_none=True)
async def get_diagram(
    diagram_id: str,
    storage: Storage,
    options: Annotated[DiagramQueryOptions, Depends()],
):
    """
    Diagram detayini getir.

    Raises:
        DiagramNotFoundException: Diagram bulunamazsa
    """
    diagram = await storage.get_diagram(diagram_id, options)
    if not diagram:
        raise DiagramNotFoundException(diagram_id)
    return diagram


@router.patch("/{diagram_id}", response_model=Diagram, response_model_exclude_none=True)
async def update_diagram(
    diagram_id: str,
    data: DiagramUpdate,
    storage: Storage,
):
    """
    Diagram alanlarini guncelle; body'de yeni bir id varsa diagram yeniden adlandirilir
    ve tum alt icerik yeni id'ye tasinir.

    Raises:
        DiagramNotFoundException: Diagram bulunamazsa
    """
    if not await storage.get_diagram(diagram_id):
        raise DiagramNotFoundException(diagram_id)

    await storage.update_diagram(diagram_id, data)

    current_id = data.id or diagram_id
    if current_id != diagram_id:
        diagram_logger.info(
            "Diagram id changed",
            extra={"old_id": diagram_id, "new_id": current_id}
        )
    return await storage.get_diagram(current_id)


@router.delete("/{diagram_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_diagram(
    diagram_id: str,
    storage: Storage,
    user: OptionalUser,
):
    """
    Diagram'i ve tum alt icerigini sil.

    Raises:
        DiagramNotFoundException: Diagram bulunamazsa
    """
    if not await storage.get_diagram(diagram_id):
        raise DiagramNotFoundException(diagram_id)

    await storage.delete_diagram(diagram_id)

    diagram_logger.info(
        "Diagram deleted",
        extra={
            "diagram_id": diagram_id,
            "deleted_by": user.id if user else None,
        }
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
