from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RealtimeModel(BaseModel):
    """Wire formati camelCase; Python tarafi snake_case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PresencePayload(RealtimeModel):
    """Track payload: { userId, email?, name?, avatarUrl?, lastSeenAt }"""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: Optional[str] = None


class PresenceParticipant(PresencePayload):
    presence_ref: str


class RemoteCursorState(RealtimeModel):
    session_id: str
    user_id: Optional[str] = None
    x: float
    y: float
    updated_at: int  # epoch ms


class CursorView(RealtimeModel):
    session_id: str
    x: float
    y: float
    color: str
    label: str
