"""Ortak router dependency'leri: opsiyonel kullanici ve aktif storage backend'i."""

from typing import Annotated, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from diagramsync.exceptions import AuthenticationException
from diagramsync.services.auth_service import AuthUser, user_from_token
from diagramsync.storage.base import StorageBackend
from diagramsync.storage.selector import get_storage_selector

security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)]
) -> Optional[AuthUser]:
    """Token yoksa veya gecersizse None: oturum acmamis kullanici."""
    if credentials is None:
        return None
    return user_from_token(credentials.credentials)


async def get_current_user(
    user: Annotated[Optional[AuthUser], Depends(get_optional_user)]
) -> AuthUser:
    """
    Oturum zorunlu endpoint'ler icin.

    Raises:
        AuthenticationException: Token yoksa veya gecersizse
    """
    if user is None:
        raise AuthenticationException()
    return user


async def get_storage(
    user: Annotated[Optional[AuthUser], Depends(get_optional_user)]
) -> StorageBackend:
    return get_storage_selector().select(user)


OptionalUser = Annotated[Optional[AuthUser], Depends(get_optional_user)]
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
Storage = Annotated[StorageBackend, Depends(get_storage)]
