"""
Cursor Broadcast Filter

Ham (muhtemelen bayat) remote cursor akisindan cizilebilir cursor setini
cikarir. Filtre okuma aninda uygulanir; hicbir kaydi silmez. Bayat bir
cursor zaman asimina ugradiginda sessizce gorunmez olur.
"""

import time
from typing import Iterable, Mapping, Optional, Union

from diagramsync.realtime.display import display_name
from diagramsync.schemas.realtime import CursorView, PresenceParticipant, RemoteCursorState

CURSOR_FRESHNESS_MS = 10_000
CURSOR_SATURATION = "85%"
CURSOR_LIGHTNESS = "60%"


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def session_hue(session_id: str) -> int:
    """
    Session id'den deterministik hue (0-359).
    Browser istemcileriyle ayni rengi uretmek icin JS 32-bit shift semantigi korunur:
    hash = code + ((hash << 5) - hash)
    """
    hash_value = 0
    for char in session_id:
        # JS charCodeAt UTF-16 code unit'i doner
        for code in _utf16_units(char):
            shifted = _to_int32(_to_int32(hash_value) << 5)
            hash_value = code + (shifted - hash_value)
    return abs(hash_value) % 360


def _utf16_units(char: str) -> tuple[int, ...]:
    code_point = ord(char)
    if code_point <= 0xFFFF:
        return (code_point,)
    code_point -= 0x10000
    return (0xD800 + (code_point >> 10), 0xDC00 + (code_point & 0x3FF))


def session_color(session_id: str) -> str:
    return f"hsl({session_hue(session_id)}, {CURSOR_SATURATION}, {CURSOR_LIGHTNESS})"


def is_cursor_active(cursor: RemoteCursorState, local_session_id: str, now: int) -> bool:
    if cursor.session_id == local_session_id:
        return False
    if not (0 <= cursor.x <= 1 and 0 <= cursor.y <= 1):
        return False
    return now - cursor.updated_at < CURSOR_FRESHNESS_MS


def filter_active_cursors(
    cursors: Iterable[RemoteCursorState],
    local_session_id: str,
    now: Optional[int] = None,
) -> list[RemoteCursorState]:
    """Gosterilebilir cursor'lar; girdi listesi degistirilmez."""
    current = now_ms() if now is None else now
    return [cursor for cursor in cursors if is_cursor_active(cursor, local_session_id, current)]


def describe_cursors(
    cursors: Iterable[RemoteCursorState],
    participants: Iterable[PresenceParticipant],
) -> list[CursorView]:
    by_session = {p.session_id: p for p in participants if p.session_id}
    return [
        CursorView(
            session_id=cursor.session_id,
            x=cursor.x,
            y=cursor.y,
            color=session_color(cursor.session_id),
            label=display_name(by_session.get(cursor.session_id)),
        )
        for cursor in cursors
    ]


CursorPosition = Union[Mapping[str, float], tuple[float, float]]


class CursorTracker:
    """
    Bir diagram icin session basina son cursor kaydi.

    Kayitlar sadece acik kaldirma sinyaliyle (pozisyon None) silinir;
    bayatlik ve aralik disi koordinatlar kaydi silmez, sadece gizler.
    Boyut distinct session sayisiyla sinirlidir.
    """

    def __init__(self):
        self._cursors: dict[str, RemoteCursorState] = {}

    def __len__(self) -> int:
        return len(self._cursors)

    def apply(
        self,
        session_id: str,
        position: Optional[CursorPosition],
        user_id: Optional[str] = None,
        received_at: Optional[int] = None,
    ) -> Optional[RemoteCursorState]:
        if position is None:
            self._cursors.pop(session_id, None)
            return None

        if isinstance(position, Mapping):
            x, y = float(position["x"]), float(position["y"])
        else:
            x, y = float(position[0]), float(position[1])

        cursor = RemoteCursorState(
            session_id=session_id,
            user_id=user_id,
            x=x,
            y=y,
            updated_at=now_ms() if received_at is None else received_at,
        )
        self._cursors[session_id] = cursor
        return cursor

    def remove(self, session_id: str) -> None:
        self._cursors.pop(session_id, None)

    def all(self) -> list[RemoteCursorState]:
        return list(self._cursors.values())

    def active(self, local_session_id: str, now: Optional[int] = None) -> list[RemoteCursorState]:
        return filter_active_cursors(self._cursors.values(), local_session_id, now)

    def clear(self) -> None:
        self._cursors.clear()
