"""
Realtime Channel Hub

Isimli kanallar uzerinde presence tracking ve broadcast saglayan pub/sub primitive'i.

- MemoryRealtimeHub: tek process, test ve tek instance deployment icin
- RedisRealtimeHub: presence Redis hash'inde (TTL ile), event'ler pub/sub ile
  tum instance'lara dagitilir

Presence state formati: {presence_key: [ {...payload, "presence_ref": ref}, ... ]}
Ayni kullanici birden fazla baglanti acabilir; her baglanti kendi ref'ini tasir.
"""

import asyncio
import inspect
import json
import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from diagramsync.config import settings
from diagramsync.exceptions import RealtimeException
from diagramsync.utils.logging_config import websocket_logger

PresenceState = dict[str, list[dict[str, Any]]]
Handler = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]
StatusCallback = Callable[["ChannelStatus"], Union[None, Awaitable[None]]]

PRESENCE_EVENTS = ("sync", "join", "leave")

# Redis key prefix'leri
PRESENCE_PREFIX = "presence:"
CHANNEL_PREFIX = "realtime:"


class ChannelStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


async def call_handler(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class RealtimeChannel(ABC):
    """Tek bir baglantinin bir kanala abonelik handle'i."""

    def __init__(self, name: str, presence_key: str):
        self.name = name
        self.presence_key = presence_key
        self.ref = uuid.uuid4().hex
        self.status: Optional[ChannelStatus] = None
        self._presence_handlers: dict[str, list[Handler]] = {event: [] for event in PRESENCE_EVENTS}
        self._broadcast_handlers: dict[str, list[Handler]] = {}

    @property
    def is_subscribed(self) -> bool:
        return self.status is ChannelStatus.SUBSCRIBED

    def on_presence(self, event: str, handler: Handler) -> "RealtimeChannel":
        if event not in self._presence_handlers:
            raise ValueError(f"Unknown presence event: {event}")
        self._presence_handlers[event].append(handler)
        return self

    def on_broadcast(self, event: str, handler: Handler) -> "RealtimeChannel":
        self._broadcast_handlers.setdefault(event, []).append(handler)
        return self

    async def _dispatch(self, handlers: list[Handler], payload: dict[str, Any]) -> None:
        # Bir handler'in hatasi digerlerini etkilemez
        for handler in list(handlers):
            try:
                await call_handler(handler, payload)
            except Exception as e:
                websocket_logger.warning(
                    "Realtime handler failed",
                    extra={"channel": self.name, "ref": self.ref, "error": str(e)},
                )

    async def dispatch_presence(self, event: str, payload: dict[str, Any]) -> None:
        await self._dispatch(self._presence_handlers.get(event, []), payload)

    async def dispatch_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        await self._dispatch(self._broadcast_handlers.get(event, []), payload)

    async def _set_status(self, status: ChannelStatus, callback: Optional[StatusCallback]) -> ChannelStatus:
        self.status = status
        if callback is not None:
            await call_handler(callback, status)
        return status

    def _require_subscribed(self, action: str) -> None:
        if not self.is_subscribed:
            raise RealtimeException(f"Cannot {action} on {self.name}: channel is not subscribed")

    @abstractmethod
    async def subscribe(self, callback: Optional[StatusCallback] = None) -> ChannelStatus: ...

    @abstractmethod
    async def track(self, payload: dict[str, Any]) -> None:
        """Presence payload'unu yayinla; ayni ref ile tekrar cagrilirsa gunceller."""

    @abstractmethod
    async def untrack(self) -> None: ...

    @abstractmethod
    def presence_state(self) -> PresenceState: ...

    async def fetch_state(self) -> PresenceState:
        """Abone olmadan guncel presence state (REST okumalari icin)."""
        return self.presence_state()

    @abstractmethod
    async def send(self, event: str, payload: dict[str, Any]) -> None:
        """Kanaldaki diger abonelere broadcast (gonderen kendi mesajini almaz)."""

    @abstractmethod
    async def unsubscribe(self) -> None: ...


class RealtimeHub(ABC):
    backend = "abstract"

    @abstractmethod
    def channel(self, name: str, presence_key: str) -> RealtimeChannel: ...

    async def close(self) -> None:
        return None

    async def health_check(self) -> dict[str, Any]:
        return {"backend": self.backend, "connected": True}


def build_state(entries: list[tuple[str, str, dict[str, Any]]]) -> PresenceState:
    """(ref, key, payload) listesinden presence state olustur."""
    state: PresenceState = {}
    for ref, key, payload in entries:
        state.setdefault(key, []).append({**payload, "presence_ref": ref})
    return state


# ==================== In-memory ====================

class MemoryChannel(RealtimeChannel):
    def __init__(self, hub: "MemoryRealtimeHub", name: str, presence_key: str):
        super().__init__(name, presence_key)
        self._hub = hub

    async def subscribe(self, callback: Optional[StatusCallback] = None) -> ChannelStatus:
        if self.is_subscribed:
            return self.status
        self._hub._subscribers.setdefault(self.name, []).append(self)
        websocket_logger.debug("Channel subscribed", extra={"channel": self.name, "ref": self.ref})
        return await self._set_status(ChannelStatus.SUBSCRIBED, callback)

    async def track(self, payload: dict[str, Any]) -> None:
        self._require_subscribed("track")
        presences = self._hub._presence.setdefault(self.name, {})
        is_new = self.ref not in presences
        presences[self.ref] = (self.presence_key, dict(payload))

        if is_new:
            await self._hub._emit_presence(self.name, "join", {
                "key": self.presence_key,
                "new_presences": [{**payload, "presence_ref": self.ref}],
            })
        await self._hub._emit_presence(self.name, "sync", {})

    async def untrack(self) -> None:
        presences = self._hub._presence.get(self.name, {})
        removed = presences.pop(self.ref, None)
        if removed is None:
            return
        if not presences:
            self._hub._presence.pop(self.name, None)

        await self._hub._emit_presence(self.name, "leave", {
            "key": self.presence_key,
            "left_presences": [{**removed[1], "presence_ref": self.ref}],
        })
        await self._hub._emit_presence(self.name, "sync", {})

    def presence_state(self) -> PresenceState:
        presences = self._hub._presence.get(self.name, {})
        return build_state([(ref, key, payload) for ref, (key, payload) in presences.items()])

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self._require_subscribed("send")
        for subscriber in list(self._hub._subscribers.get(self.name, [])):
            if subscriber is not self:
                await subscriber.dispatch_broadcast(event, payload)

    async def unsubscribe(self) -> None:
        if self.status is ChannelStatus.CLOSED:
            return
        subscribers = self._hub._subscribers.get(self.name, [])
        if self in subscribers:
            subscribers.remove(self)
            if not subscribers:
                self._hub._subscribers.pop(self.name, None)
        self.status = ChannelStatus.CLOSED
        await self.untrack()
        websocket_logger.debug("Channel unsubscribed", extra={"channel": self.name, "ref": self.ref})


class MemoryRealtimeHub(RealtimeHub):
    backend = "memory"

    def __init__(self):
        self._subscribers: dict[str, list[MemoryChannel]] = {}
        # channel -> {ref: (presence_key, payload)}
        self._presence: dict[str, dict[str, tuple[str, dict[str, Any]]]] = {}

    def channel(self, name: str, presence_key: str) -> MemoryChannel:
        return MemoryChannel(self, name, presence_key)

    async def _emit_presence(self, name: str, event: str, payload: dict[str, Any]) -> None:
        for subscriber in list(self._subscribers.get(name, [])):
            await subscriber.dispatch_presence(event, payload)

    async def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for channel in list(subscribers):
                await channel.unsubscribe()

    async def health_check(self) -> dict[str, Any]:
        return {
            "backend": self.backend,
            "connected": True,
            "channels": len(self._subscribers),
        }


# ==================== Redis ====================

class RedisChannel(RealtimeChannel):
    def __init__(self, hub: "RedisRealtimeHub", name: str, presence_key: str):
        super().__init__(name, presence_key)
        self._hub = hub
        self._redis = hub.redis
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        self._state: PresenceState = {}
        self._tracked = False

    @property
    def presence_hash(self) -> str:
        return f"{PRESENCE_PREFIX}{self.name}"

    @property
    def pubsub_channel(self) -> str:
        return f"{CHANNEL_PREFIX}{self.name}"

    async def subscribe(self, callback: Optional[StatusCallback] = None) -> ChannelStatus:
        if self.is_subscribed:
            return self.status
        try:
            self._pubsub = self._redis.pubsub()
            await self._pubsub.subscribe(self.pubsub_channel)
            await self.refresh_state()
        except (RedisError, OSError) as e:
            websocket_logger.warning(f"Redis subscribe failed for {self.name}: {e}")
            return await self._set_status(ChannelStatus.CHANNEL_ERROR, callback)

        self._listener = asyncio.create_task(self._listen())
        self._hub._channels.add(self)
        websocket_logger.debug("Channel subscribed", extra={"channel": self.name, "ref": self.ref})
        return await self._set_status(ChannelStatus.SUBSCRIBED, callback)

    async def refresh_state(self) -> PresenceState:
        """Hash'i oku, TTL'i gecmis girdileri sil, cache'i guncelle."""
        raw = await self._redis.hgetall(self.presence_hash)
        now = time.time()
        entries, expired = [], []
        for ref, value in raw.items():
            try:
                record = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                expired.append(ref)
                continue
            if now - record.get("tracked_at", 0) > self._hub.ttl_seconds:
                expired.append(ref)
                continue
            entries.append((record.get("tracked_at", 0), ref, record["key"], record["payload"]))

        if expired:
            await self._redis.hdel(self.presence_hash, *expired)

        entries.sort(key=lambda e: e[0])
        self._state = build_state([(ref, key, payload) for _, ref, key, payload in entries])
        return self._state

    async def _publish(self, message: dict[str, Any]) -> None:
        await self._redis.publish(self.pubsub_channel, json.dumps(message))

    async def track(self, payload: dict[str, Any]) -> None:
        self._require_subscribed("track")
        record = {"key": self.presence_key, "payload": payload, "tracked_at": time.time()}
        try:
            is_new = not await self._redis.hexists(self.presence_hash, self.ref)
            await self._redis.hset(self.presence_hash, self.ref, json.dumps(record))
            await self._redis.expire(self.presence_hash, self._hub.ttl_seconds)
            self._tracked = True
            await self.refresh_state()
            await self._publish({
                "type": "presence",
                "event": "join" if is_new else "sync",
                "key": self.presence_key,
                "ref": self.ref,
                "payload": payload,
            })
        except (RedisError, OSError) as e:
            raise RealtimeException(f"Presence track failed: {e}") from e

    async def untrack(self) -> None:
        if not self._tracked:
            return
        self._tracked = False
        try:
            removed = await self._redis.hdel(self.presence_hash, self.ref)
            await self.refresh_state()
            if removed:
                await self._publish({
                    "type": "presence",
                    "event": "leave",
                    "key": self.presence_key,
                    "ref": self.ref,
                })
        except (RedisError, OSError) as e:
            websocket_logger.warning(f"Redis untrack failed for {self.name}: {e}")

    def presence_state(self) -> PresenceState:
        return {key: [dict(entry) for entry in entries] for key, entries in self._state.items()}

    async def fetch_state(self) -> PresenceState:
        try:
            await self.refresh_state()
        except (RedisError, OSError) as e:
            raise RealtimeException(f"Presence read failed: {e}") from e
        return self.presence_state()

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self._require_subscribed("send")
        try:
            await self._publish({"type": "broadcast", "event": event, "payload": payload, "sender": self.ref})
        except (RedisError, OSError) as e:
            raise RealtimeException(f"Broadcast failed: {e}") from e

    async def _handle(self, message: dict[str, Any]) -> None:
        if message.get("type") == "broadcast":
            if message.get("sender") != self.ref:
                await self.dispatch_broadcast(message.get("event", ""), message.get("payload") or {})
            return

        if message.get("type") != "presence":
            return

        await self.refresh_state()
        event = message.get("event")
        entry = {**(message.get("payload") or {}), "presence_ref": message.get("ref")}
        if event == "join":
            await self.dispatch_presence("join", {"key": message.get("key"), "new_presences": [entry]})
        elif event == "leave":
            await self.dispatch_presence("leave", {"key": message.get("key"), "left_presences": [entry]})
        await self.dispatch_presence("sync", {})

    async def _listen(self) -> None:
        """Pub/sub mesajlarini dinle; ayri bir task olarak calisir."""
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    data = json.loads(message["data"])
                except (json.JSONDecodeError, TypeError) as e:
                    websocket_logger.warning(f"Failed to parse pub/sub message: {e}")
                    continue
                await self._handle(data)
        except (RedisError, OSError) as e:
            websocket_logger.warning(f"Pub/sub listen error on {self.name}: {e}")
            self.status = ChannelStatus.CHANNEL_ERROR

    async def unsubscribe(self) -> None:
        if self.status is ChannelStatus.CLOSED:
            return
        was_subscribed = self.is_subscribed
        self.status = ChannelStatus.CLOSED
        self._hub._channels.discard(self)

        if was_subscribed:
            await self.untrack()

        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.pubsub_channel)
                await self._pubsub.aclose()
            except (RedisError, OSError) as e:
                websocket_logger.warning(f"Redis unsubscribe failed for {self.name}: {e}")
            self._pubsub = None

        self._state = {}
        websocket_logger.debug("Channel unsubscribed", extra={"channel": self.name, "ref": self.ref})


class RedisRealtimeHub(RealtimeHub):
    backend = "redis"

    def __init__(self, redis: Redis, ttl_seconds: int = 90):
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self._channels: set[RedisChannel] = set()

    def channel(self, name: str, presence_key: str) -> RedisChannel:
        return RedisChannel(self, name, presence_key)

    async def close(self) -> None:
        for channel in list(self._channels):
            await channel.unsubscribe()
        await self.redis.aclose()

    async def health_check(self) -> dict[str, Any]:
        try:
            await self.redis.ping()
            connected = True
        except (RedisError, OSError):
            connected = False
        return {"backend": self.backend, "connected": connected, "channels": len(self._channels)}


# ==================== Global hub ====================

_hub: Optional[RealtimeHub] = None


async def connect_redis(redis_url: str) -> Redis:
    pool = ConnectionPool.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
    )
    redis = Redis(connection_pool=pool)
    try:
        await redis.ping()
    except (RedisError, OSError):
        await redis.aclose()
        raise
    return redis


async def init_realtime_hub() -> Optional[RealtimeHub]:
    """REALTIME_ENABLED kapaliysa None; Redis yoksa in-memory hub."""
    global _hub
    if not settings.REALTIME_ENABLED:
        websocket_logger.info("Realtime disabled, presence will stay idle")
        _hub = None
        return None

    if settings.REALTIME_USE_REDIS:
        try:
            redis = await connect_redis(settings.REDIS_URL)
            _hub = RedisRealtimeHub(redis, settings.PRESENCE_TTL_SECONDS)
            websocket_logger.info("Realtime hub connected to Redis")
            return _hub
        except (RedisError, OSError) as e:
            websocket_logger.warning(f"Redis connection failed, using in-memory realtime hub: {e}")

    _hub = MemoryRealtimeHub()
    websocket_logger.info("Realtime hub running in memory")
    return _hub


def get_realtime_hub() -> Optional[RealtimeHub]:
    return _hub


def set_realtime_hub(hub: Optional[RealtimeHub]) -> None:
    global _hub
    _hub = hub


async def close_realtime_hub() -> None:
    global _hub
    if _hub is not None:
        await _hub.close()
        _hub = None
        websocket_logger.info("Realtime hub closed")
