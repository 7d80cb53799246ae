import json
from typing import Any, Optional
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from diagramsync.error_handlers import WebSocketErrorHandler
from diagramsync.exceptions import ErrorCode, RealtimeException
from diagramsync.realtime.cursors import describe_cursors
from diagramsync.realtime.hub import get_realtime_hub
from diagramsync.realtime.presence import PresenceChannelManager, channel_name, compute_participants
from diagramsync.routers.deps import CurrentUser
from diagramsync.schemas.realtime import PresenceParticipant, RemoteCursorState
from diagramsync.services.auth_service import user_from_token
from diagramsync.utils.logging_config import websocket_logger

router = APIRouter(tags=["Realtime"])

# Close code'lari
WS_UNAUTHORIZED = 4001
WS_REALTIME_DISABLED = 4003


class DiagramConnection:
    """Tek bir websocket ile onun presence manager'i arasindaki kopru."""

    def __init__(self, websocket: WebSocket, diagram_id: str):
        self.websocket = websocket
        self.diagram_id = diagram_id
        self.manager: Optional[PresenceChannelManager] = None
        self.closed = False

    @property
    def session_id(self) -> Optional[str]:
        return self.manager.session_id if self.manager else None

    async def send(self, message: dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            await self.websocket.send_json(message)
        except Exception as e:
            WebSocketErrorHandler.log_websocket_error(
                error=e,
                diagram_id=self.diagram_id,
                session_id=self.session_id,
                message_type=message.get("type"),
            )

    async def send_participants(self, participants: list[PresenceParticipant]) -> None:
        others = self.manager.others if self.manager else participants
        await self.send({
            "type": "presence",
            "participants": [p.to_wire() for p in participants],
            "others": [p.to_wire() for p in others],
        })

    async def send_cursors(self, cursor: Optional[RemoteCursorState], session_id: str) -> None:
        if self.manager is None:
            return
        views = describe_cursors(self.manager.remote_cursors(), self.manager.participants)
        await self.send({
            "type": "cursors",
            "cursors": [view.to_wire() for view in views],
        })


def parse_cursor(data: dict[str, Any]) -> Optional[tuple[float, float]]:
    """{"cursor": {"x", "y"}} veya {"cursor": null}; gecersizse ValueError."""
    cursor = data.get("cursor")
    if cursor is None:
        return None
    if not isinstance(cursor, dict):
        raise ValueError("cursor must be an object or null")
    x, y = cursor.get("x"), cursor.get("y")
    if isinstance(x, bool) or isinstance(y, bool) or not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
        raise ValueError("cursor x and y must be numbers")
    return float(x), float(y)


@router.get("/api/diagrams/{diagram_id}/presence", response_model=list[PresenceParticipant])
async def get_presence(diagram_id: str, user: CurrentUser):
    """
    Diagram'i su an goruntuleyenler.

    Raises:
        RealtimeException: Realtime kapaliysa
    """
    hub = get_realtime_hub()
    if hub is None:
        raise RealtimeException()
    channel = hub.channel(channel_name(diagram_id), user.id)
    return compute_participants(await channel.fetch_state())


@router.websocket("/ws/diagram/{diagram_id}")
async def diagram_socket(
    websocket: WebSocket,
    diagram_id: str,
    token: str = Query(None),
):
    """
    Diagram presence + cursor kanali.

    Istemci mesajlari:
        {"type": "cursor", "cursor": {"x": 0.5, "y": 0.25}}  (null: cursor gizle)
        {"type": "ping"}
    Sunucu mesajlari: session, presence, cursors, pong, error
    """
    user = user_from_token(token)
    if user is None:
        await websocket.close(code=WS_UNAUTHORIZED, reason="Unauthorized")
        return

    hub = get_realtime_hub()
    if hub is None:
        await websocket.close(code=WS_REALTIME_DISABLED, reason="Realtime disabled")
        return

    await websocket.accept()

    connection = DiagramConnection(websocket, diagram_id)
    manager = PresenceChannelManager(
        hub,
        on_change=connection.send_participants,
        on_cursor=connection.send_cursors,
    )
    connection.manager = manager

    await connection.send({"type": "session", "sessionId": manager.session_id, "diagramId": diagram_id})
    await manager.connect(diagram_id, user)

    websocket_logger.info(
        "User connected to diagram",
        extra={
            "diagram_id": diagram_id,
            "user_id": user.id,
            "session_id": manager.session_id,
            "state": manager.state.value,
        }
    )

    try:
        while True:
            data = await websocket.receive_json()
            msg_type = data.get("type") if isinstance(data, dict) else None

            websocket_logger.debug(
                "WebSocket message received",
                extra={"diagram_id": diagram_id, "session_id": manager.session_id, "msg_type": msg_type}
            )

            if msg_type == "cursor":
                try:
                    position = parse_cursor(data)
                except ValueError as e:
                    await WebSocketErrorHandler.send_error_message(
                        websocket, str(e), ErrorCode.WS_INVALID_MESSAGE.value
                    )
                    continue
                if position is None:
                    await manager.send_cursor(None)
                else:
                    await manager.send_cursor(*position)

            elif msg_type == "ping":
                await connection.send({"type": "pong"})

            else:
                await WebSocketErrorHandler.send_error_message(
                    websocket,
                    "Unknown message type",
                    ErrorCode.WS_INVALID_MESSAGE.value,
                    {"type": msg_type},
                )

    except WebSocketDisconnect:
        pass
    except json.JSONDecodeError as e:
        await WebSocketErrorHandler.handle_connection_error(websocket, e, "Invalid JSON", close_code=1003)
    finally:
        connection.closed = True
        await manager.close()
        websocket_logger.info(
            "User disconnected from diagram",
            extra={"diagram_id": diagram_id, "user_id": user.id, "session_id": manager.session_id}
        )
