from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .config import settings
from .errors import Unauthorized
from ..db.base import get_db
from ..models.database import User

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN = "access"
EMAIL_TOKEN = "verify-email"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def _encode(claims: Dict[str, Any], expires_in: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, purpose: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")
    if payload.get("purpose") != purpose:
        raise Unauthorized("Invalid token")
    return payload


def create_access_token(user: User) -> str:
    return _encode(
        {"sub": str(user.id), "username": user.username, "purpose": ACCESS_TOKEN},
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_email_token(user: User) -> str:
    return _encode(
        {"sub": str(user.id), "email": user.email, "purpose": EMAIL_TOKEN},
        timedelta(hours=settings.EMAIL_TOKEN_EXPIRE_HOURS),
    )


def decode_email_token(token: str) -> Dict[str, Any]:
    return _decode(token, EMAIL_TOKEN)


def user_from_token(db: Session, token: Optional[str]) -> User:
    """Resolve a bearer token to its user, raising Unauthorized otherwise."""
    if not token:
        raise Unauthorized("No token")
    payload = _decode(token, ACCESS_TOKEN)
    user = db.query(User).filter(User.username == payload.get("username")).first()
    if not user or str(user.id) != payload.get("sub"):
        raise Unauthorized("Invalid token")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    return user_from_token(db, credentials.credentials if credentials else None)
