"""
Presence Channel Manager

Bir diagram'i kimlerin goruntuledigini takip eder.

State machine:
    IDLE -> CONNECTING -> SUBSCRIBED -> ACTIVE (keepalive calisiyor) -> CLOSING -> CLOSED

Diagram secili degilse, kullanici yoksa veya realtime kapaliysa IDLE'da kalir
ve participant listesi bos olur. Her sync / join / leave event'inde liste
kanal state'inden bastan hesaplanir (incremental degil).
"""

import asyncio
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from diagramsync.config import settings
from diagramsync.exceptions import RealtimeException
from diagramsync.realtime.cursors import CursorTracker
from diagramsync.realtime.hub import (
    PRESENCE_EVENTS,
    ChannelStatus,
    PresenceState,
    RealtimeChannel,
    RealtimeHub,
    call_handler,
)
from diagramsync.schemas.realtime import PresenceParticipant, PresencePayload, RemoteCursorState
from diagramsync.services.auth_service import AuthUser
from diagramsync.utils.logging_config import presence_logger

KEEPALIVE_INTERVAL_SECONDS = 30.0
CURSOR_EVENT = "cursor"
ANONYMOUS_NAME = "Anonymous user"

ParticipantsCallback = Callable[[list[PresenceParticipant]], Union[None, Awaitable[None]]]
CursorCallback = Callable[[Optional[RemoteCursorState], str], Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


def channel_name(diagram_id: str) -> str:
    return f"diagram:{diagram_id}"


def compute_participants(state: PresenceState) -> list[PresenceParticipant]:
    """
    Kanal state'inden siralanmis participant listesi.

    Sunucu ref'i yoksa f"{user_id}-{index}" kullanilir (index duzlestirilmis sira).
    Isimsiz girdiler "" olarak siralanir, yani isimlilerden once gelir.
    """
    flattened = [entry for entries in state.values() for entry in entries]

    participants = []
    for index, entry in enumerate(flattened):
        data = dict(entry)
        server_ref = data.pop("presence_ref", None)
        user_id = data.get("userId", data.get("user_id"))
        data["presenceRef"] = server_ref or f"{user_id}-{index}"
        participants.append(PresenceParticipant.model_validate(data))

    participants.sort(key=lambda p: ((p.name or "").casefold(), p.name or ""))
    return participants


def presence_payload(user: AuthUser, session_id: Optional[str] = None) -> PresencePayload:
    if user.name is not None:
        name = user.name
    elif user.email is not None:
        name = user.email
    else:
        name = ANONYMOUS_NAME
    return PresencePayload(
        user_id=user.id,
        email=user.email,
        name=name,
        avatar_url=user.avatar_url,
        session_id=session_id,
    )


class PresenceChannelManager:
    """
    Tek bir baglanti (session) icin diagram presence'i.

    on_change: participant listesi gercekten degistiginde cagrilir.
    on_cursor: baska bir session'in cursor mesaji geldiginde (state, session_id).
    """

    def __init__(
        self,
        hub: Optional[RealtimeHub],
        *,
        enabled: Optional[bool] = None,
        on_change: Optional[ParticipantsCallback] = None,
        on_cursor: Optional[CursorCallback] = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL_SECONDS,
        session_id: Optional[str] = None,
    ):
        self.hub = hub
        self.enabled = settings.REALTIME_ENABLED if enabled is None else enabled
        self.keepalive_interval = keepalive_interval
        self.session_id = session_id or uuid.uuid4().hex
        self.state = ConnectionState.IDLE
        self.participants: list[PresenceParticipant] = []
        self.cursors = CursorTracker()

        self.diagram_id: Optional[str] = None
        self.user: Optional[AuthUser] = None

        self._on_change = on_change
        self._on_cursor = on_cursor
        self._channel: Optional[RealtimeChannel] = None
        self._keepalive: Optional[asyncio.Task] = None

    @property
    def others(self) -> list[PresenceParticipant]:
        if self.user is None:
            return list(self.participants)
        return [p for p in self.participants if p.user_id != self.user.id]

    @property
    def is_active(self) -> bool:
        return self.state is ConnectionState.ACTIVE

    # ==================== Lifecycle ====================

    async def connect(self, diagram_id: Optional[str], user: Optional[AuthUser]) -> ConnectionState:
        if (
            self._channel is not None
            and self.diagram_id == diagram_id
            and self.user == user
        ):
            return self.state

        if self._channel is not None:
            await self.close()

        if not diagram_id or user is None or not self.enabled or self.hub is None:
            self.state = ConnectionState.IDLE
            await self._set_participants([])
            return self.state

        self.diagram_id = diagram_id
        self.user = user
        self.state = ConnectionState.CONNECTING

        channel = self.hub.channel(channel_name(diagram_id), user.id)
        self._channel = channel
        for event in PRESENCE_EVENTS:
            channel.on_presence(event, self._on_presence_event)
        channel.on_broadcast(CURSOR_EVENT, self._on_cursor_message)

        presence_logger.debug(
            "Presence connecting",
            extra={"diagram_id": diagram_id, "user_id": user.id, "session_id": self.session_id},
        )

        try:
            await channel.subscribe(self._on_status)
        except RealtimeException as e:
            self._log_error("subscribe", e)
            await self.close()

        return self.state

    async def _on_status(self, status: ChannelStatus) -> None:
        if self._channel is None:
            return

        if status is not ChannelStatus.SUBSCRIBED:
            self._log_error("status", RealtimeException(f"Channel status {status.value}"))
            await self._set_participants([])
            return

        self.state = ConnectionState.SUBSCRIBED
        await self._channel.track(self._payload())
        await self._recompute()

        self._keepalive = asyncio.create_task(self._keepalive_loop())
        self.state = ConnectionState.ACTIVE
        presence_logger.info(
            "Presence active",
            extra={"diagram_id": self.diagram_id, "user_id": self.user.id, "session_id": self.session_id},
        )

    async def close(self) -> None:
        """Keepalive iptal, liste temizle, unsubscribe. Birden fazla cagrilabilir."""
        if self._channel is None and self._keepalive is None:
            if self.state is not ConnectionState.IDLE:
                self.state = ConnectionState.CLOSED
            await self._set_participants([])
            return

        self.state = ConnectionState.CLOSING

        keepalive, self._keepalive = self._keepalive, None
        if keepalive is not None:
            keepalive.cancel()
            try:
                await keepalive
            except asyncio.CancelledError:
                pass

        channel, self._channel = self._channel, None
        await self._set_participants([])
        self.cursors.clear()

        if channel is not None:
            try:
                await channel.unsubscribe()
            except RealtimeException as e:
                self._log_error("unsubscribe", e)

        presence_logger.debug(
            "Presence closed",
            extra={"diagram_id": self.diagram_id, "session_id": self.session_id},
        )
        self.diagram_id = None
        self.user = None
        self.state = ConnectionState.CLOSED

    # ==================== Presence ====================

    def _payload(self) -> dict[str, Any]:
        return presence_payload(self.user, self.session_id).to_wire()

    async def _keepalive_loop(self) -> None:
        """Sunucu tarafi presence expiry'sini onlemek icin periyodik re-track."""
        while True:
            await asyncio.sleep(self.keepalive_interval)
            channel = self._channel
            if channel is None:
                return
            try:
                await channel.track(self._payload())
            except RealtimeException as e:
                self._log_error("keepalive", e)

    async def _on_presence_event(self, payload: dict[str, Any]) -> None:
        await self._recompute()

    async def _recompute(self) -> None:
        channel = self._channel
        if channel is None:
            return
        try:
            participants = compute_participants(channel.presence_state())
        except ValidationError as e:
            self._log_error("presence state", e)
            participants = []
        await self._set_participants(participants)

    async def _set_participants(self, participants: list[PresenceParticipant]) -> None:
        if participants == self.participants:
            return
        self.participants = participants
        if self._on_change is not None:
            await call_handler(self._on_change, list(participants))

    def _log_error(self, stage: str, error: Exception) -> None:
        # Presence hatalari sadece development modunda gorunur
        if settings.DEBUG:
            presence_logger.warning(
                f"Presence {stage} failed",
                extra={"diagram_id": self.diagram_id, "session_id": self.session_id, "error": str(error)},
            )

    # ==================== Cursors ====================

    async def send_cursor(self, x: Optional[float], y: Optional[float] = None) -> bool:
        """Normalize cursor pozisyonunu yayinla; x None ise cursor gizlenir."""
        if not self.is_active or self._channel is None:
            return False

        cursor = None if x is None or y is None else {"x": x, "y": y}
        try:
            await self._channel.send(CURSOR_EVENT, {
                "sessionId": self.session_id,
                "userId": self.user.id,
                "cursor": cursor,
            })
        except RealtimeException as e:
            self._log_error("cursor", e)
            return False
        return True

    async def _on_cursor_message(self, payload: dict[str, Any]) -> None:
        session_id = payload.get("sessionId")
        if not session_id or session_id == self.session_id:
            return

        cursor = self.cursors.apply(session_id, payload.get("cursor"), user_id=payload.get("userId"))
        if self._on_cursor is not None:
            await call_handler(self._on_cursor, cursor, session_id)

    def remote_cursors(self) -> list[RemoteCursorState]:
        return self.cursors.active(self.session_id)
