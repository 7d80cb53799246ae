from datetime import datetime, timedelta, timezone
from typing import Any
from jose import jwt, JWTError
from diagramsync.config import settings


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Auth provider formatinda access token uret (sub, email, user_metadata).
    Gercek token'lari provider verir; bu fonksiyon lokal gelistirme ve testler icindir.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "role": to_encode.get("role", "authenticated")})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any] | None:
    try:
        # Provider token'lari "aud" tasir; audience kontrolu provider tarafinda
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return payload
    except JWTError:
        return None
