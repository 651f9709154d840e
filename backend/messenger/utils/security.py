from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from messenger.config import Settings, get_settings


def create_access_token(user_id: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Raises jwt.PyJWTError for a malformed, forged or expired token."""
    settings = settings or get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
