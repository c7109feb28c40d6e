from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings, get_settings
from database import Store, get_store

ALGORITHM = "HS256"
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ADMIN = ("admin",)
STAFF = ("admin", "instructor", "teacher")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)


def token_claims(request: Request, settings: Settings) -> Optional[Dict[str, Any]]:
    """Return the decoded bearer token if present and valid, else None."""
    auth = request.headers.get("authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    token = auth.split(" ", 1)[1]
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None


def get_current_user(
    request: Request,
    store: Store = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Optional[Dict[str, Any]]:
    """
    Resolve the caller's users row from the session token. Does not enforce auth.

    The resolved role is left on ``request.state`` for the access log.
    """
    claims = token_claims(request, settings)
    if not claims or not claims.get("sub"):
        return None
    user = store.get("users", claims["sub"])
    if not user or not user.get("is_active", True):
        return None
    request.state.user_role = user.get("role")
    return user


async def require_user(user: Optional[Dict[str, Any]] = Depends(get_current_user)) -> Dict[str, Any]:
    if user is None:
        raise HTTPException(status_code=401, detail="인증이 필요합니다.")
    return user


def require_roles(*roles: str):
    """Role policy: 401 without a session, 403 when the caller's role is not allowed."""
    async def _dep(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
        if roles and user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="권한이 없습니다.")
        return user
    return _dep


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"
