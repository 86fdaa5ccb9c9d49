"""Admin JWT auth and the cron shared-secret check."""
import hmac
import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from apps.backend.config import get_settings

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    s = get_settings()
    to_encode = data.copy()
    exp = expires_delta or timedelta(minutes=s.jwt_expire_minutes)
    to_encode.update({"exp": datetime.utcnow() + exp})
    return jwt.encode(to_encode, s.jwt_secret, algorithm=s.jwt_algorithm)


def decode_token(token: str) -> Optional[dict]:
    s = get_settings()
    try:
        return jwt.decode(token, s.jwt_secret, algorithms=[s.jwt_algorithm])
    except JWTError:
        return None


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    if not credentials:
        raise HTTPException(status_code=401, detail="Authorization required")
    payload = decode_token(credentials.credentials)
    if not payload or "sub" not in payload:
        raise HTTPException(status_code=401, detail="Invalid token")
    return payload


def _presented_cron_secrets(request: Request) -> list[str]:
    presented = []
    scheme, _, value = (request.headers.get("Authorization") or "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        presented.append(value.strip())
    header = (request.headers.get("X-Cron-Secret") or "").strip()
    if header:
        presented.append(header)
    return presented


async def require_cron_secret(request: Request) -> None:
    """Bearer or X-Cron-Secret must equal CRON_SECRET; compared in constant time."""
    s = get_settings()
    expected = s.cron_secret or ""
    if not expected:
        if (s.app_env or "").lower() == "development":
            logger.warning("cron_secret_missing allowing request in development")
            return
        logger.error("cron_secret_missing rejecting request")
        raise HTTPException(status_code=401, detail="Unauthorized")
    matches = [hmac.compare_digest(p.encode(), expected.encode()) for p in _presented_cron_secrets(request)]
    if not any(matches):
        logger.warning("cron_unauthorized path=%s", request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
