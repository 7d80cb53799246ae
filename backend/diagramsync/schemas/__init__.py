from diagramsync.schemas.diagram import (
    DatabaseType,
    EntitySnapshot,
    DBTable,
    DBRelationship,
    DBDependency,
    Area,
    DBCustomType,
    Diagram,
    DiagramUpdate,
    DiagramQueryOptions,
    ChartConfig,
    DiagramFilter,
    EntityPatch,
)
from diagramsync.schemas.realtime import PresencePayload, PresenceParticipant, RemoteCursorState, CursorView

__all__ = [
    "DatabaseType", "EntitySnapshot",
    "DBTable", "DBRelationship", "DBDependency", "Area", "DBCustomType",
    "Diagram", "DiagramUpdate", "DiagramQueryOptions", "ChartConfig", "DiagramFilter", "EntityPatch",
    "PresencePayload", "PresenceParticipant", "RemoteCursorState", "CursorView",
]
