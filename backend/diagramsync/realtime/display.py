from typing import Optional

from diagramsync.schemas.realtime import PresencePayload


def display_name(participant: Optional[PresencePayload], fallback: str = "Collaborator") -> str:
    """Isim yoksa email, o da yoksa fallback."""
    if participant is None:
        return fallback
    if participant.name is not None:
        return participant.name
    if participant.email is not None:
        return participant.email
    return fallback


def initials_from(value: Optional[str]) -> str:
    """Avatar icin bas harfler: "Ada Lovelace" -> "AL", "ada" -> "AD"."""
    if not value:
        return "?"

    parts = value.split()
    if not parts:
        return value[:2].upper()
    if len(parts) == 1:
        return parts[0][:2].upper()
    return f"{parts[0][0]}{parts[-1][0]}".upper()
