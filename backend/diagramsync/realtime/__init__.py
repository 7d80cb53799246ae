from diagramsync.realtime.hub import (
    ChannelStatus,
    RealtimeChannel,
    RealtimeHub,
    MemoryRealtimeHub,
    RedisRealtimeHub,
    init_realtime_hub,
    get_realtime_hub,
    close_realtime_hub,
)
from diagramsync.realtime.presence import (
    ConnectionState,
    PresenceChannelManager,
    compute_participants,
    channel_name,
)
from diagramsync.realtime.cursors import (
    CursorTracker,
    filter_active_cursors,
    describe_cursors,
    session_color,
    session_hue,
)
from diagramsync.realtime.display import display_name, initials_from

__all__ = [
    "ChannelStatus", "RealtimeChannel", "RealtimeHub", "MemoryRealtimeHub", "RedisRealtimeHub",
    "init_realtime_hub", "get_realtime_hub", "close_realtime_hub",
    "ConnectionState", "PresenceChannelManager", "compute_participants", "channel_name",
    "CursorTracker", "filter_active_cursors", "describe_cursors", "session_color", "session_hue",
    "display_name", "initials_from",
]
