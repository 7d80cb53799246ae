"""
Auth provider entegrasyonu.

Kullanici hesaplari harici provider'da (Supabase-style JWT) yasar; bu modul
token'dan current user'i cikarir ve sign-in / sign-out lifecycle event'lerini
dinleyicilere iletir. Storage Selector bu event'lerle yeniden secim yapar.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from diagramsync.utils.logging_config import auth_logger
from diagramsync.utils.security import decode_token


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


AuthListener = Callable[[Optional[AuthUser]], None]


def user_from_claims(claims: dict[str, Any]) -> Optional[AuthUser]:
    user_id = claims.get("sub")
    if not user_id:
        auth_logger.warning("Token missing subject (user_id)")
        return None

    metadata = claims.get("user_metadata") or {}
    return AuthUser(
        id=str(user_id),
        email=claims.get("email"),
        name=metadata.get("full_name") or metadata.get("name"),
        avatar_url=metadata.get("avatar_url"),
    )


def user_from_token(token: Optional[str]) -> Optional[AuthUser]:
    """Token gecersiz veya yoksa None: oturum acmamis kullanici."""
    if not token:
        return None

    payload = decode_token(token)
    if not payload:
        auth_logger.warning("Invalid or expired access token")
        return None

    user = user_from_claims(payload)
    if user:
        auth_logger.debug(f"User retrieved from token: {user.id}")
    return user


class AuthProvider:
    """Current user'i tutar; her degisiklikte listener'lari cagirir."""

    def __init__(self, user: Optional[AuthUser] = None):
        self._user = user
        self._listeners: list[AuthListener] = []

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user: AuthUser) -> None:
        self._user = user
        auth_logger.info(f"User signed in: {user.id}")
        self._notify()

    def sign_out(self) -> None:
        previous = self._user
        self._user = None
        if previous:
            auth_logger.info(f"User signed out: {previous.id}")
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)
