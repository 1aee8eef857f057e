from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBasic, HTTPBasicCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.core.database import get_db
from app.models.models import Role, User

basic_scheme = HTTPBasic(auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def create_access_token(user: User, clock: Clock = None) -> str:
    now = (clock or SystemClock()).now()
    payload = {
        "sub": str(user.id),
        "role": user.role.value,
        "name": user.username,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[int]:
    """User id carried by a valid, unexpired access token, else None."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
                     basic: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
                     db: Session = Depends(get_db)) -> User:
    """
    Resolve the caller from a Bearer access token or HTTP Basic credentials.

    Raises:
        HTTPException: 401 if no credentials are sent, the token is invalid or
                       expired, or the username/password pair does not match.
    """
    if bearer is not None:
        user_id = decode_access_token(bearer.credentials)
        user = db.get(User, user_id) if user_id is not None else None
        if user is None:
            raise _unauthorized("Invalid or expired access token")
        return user
    if basic is not None:
        user = db.query(User).filter(User.username == basic.username).first()
        if not user or not verify_password(basic.password, user.password_hash):
            raise _unauthorized("Invalid username or password")
        return user
    raise _unauthorized("Not authenticated")


def require_role(role: Role):
    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return current_user
    return checker
