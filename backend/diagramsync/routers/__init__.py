from diagramsync.routers.diagrams import router as diagrams_router
from diagramsync.routers.entities import entity_routers
from diagramsync.routers.settings import router as settings_router
from diagramsync.routers.realtime import router as realtime_router

__all__ = ["diagrams_router", "entity_routers", "settings_router", "realtime_router"]
