from diagramsync.models.diagram import (
    Diagram,
    DiagramContentMixin,
    DBTableRow,
    DBRelationshipRow,
    DBDependencyRow,
    AreaRow,
    DBCustomTypeRow,
)
from diagramsync.models.settings import UserConfig, DiagramFilterRow

__all__ = [
    "Diagram", "DiagramContentMixin",
    "DBTableRow", "DBRelationshipRow", "DBDependencyRow", "AreaRow", "DBCustomTypeRow",
    "UserConfig", "DiagramFilterRow",
]
