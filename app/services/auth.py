import logging
import secrets
from datetime import timedelta

from sqlalchemy.orm import Session

from app.core.clock import Clock, SystemClock
from app.core.config import settings
from app.core.security import create_access_token, verify_password
from app.models.models import RefreshToken, User
from app.services.result import FailureKind, Result

logger = logging.getLogger("library")


class AuthService:
    """
    Login, refresh and logout over access tokens and stored refresh tokens.

    A user holds at most one live refresh token: issuing a new one revokes the
    others. A refresh token is single use; refreshing marks it used and hands
    out a fresh pair.
    """

    def __init__(self, db: Session, clock: Clock = None):
        self.db = db
        self.clock = clock or SystemClock()

    def _token_pair(self, user: User) -> dict:
        now = self.clock.now()
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user.id,
            RefreshToken.is_revoked.is_(False),
        ).update({RefreshToken.is_revoked: True}, synchronize_session=False)
        refresh = RefreshToken(
            token=secrets.token_urlsafe(64),
            user_id=user.id,
            created_at=now,
            expires_at=now + timedelta(days=settings.refresh_token_days),
        )
        self.db.add(refresh)
        return {
            "access_token": create_access_token(user, self.clock),
            "refresh_token": refresh.token,
            "token_type": "bearer",
        }

    def login(self, username: str, password: str) -> Result[dict]:
        user = self.db.query(User).filter(User.username == username).first()
        if user is None:
            return Result.failure(FailureKind.USER_NOT_FOUND, "User not found.")
        if not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for user {username}")
            return Result.failure(FailureKind.INVALID_CREDENTIALS, "Invalid password.")
        tokens = self._token_pair(user)
        self.db.commit()
        logger.info(f"User id={user.id} logged in")
        return Result.success(tokens)

    def refresh(self, token: str) -> Result[dict]:
        stored = self.db.query(RefreshToken).filter(RefreshToken.token == token).first()
        if stored is None:
            return Result.failure(FailureKind.INVALID_TOKEN, "Invalid refresh token")
        if stored.expires_at < self.clock.now():
            return Result.failure(FailureKind.INVALID_TOKEN, "Refresh token expired")
        if stored.is_revoked:
            return Result.failure(FailureKind.INVALID_TOKEN, "Refresh token revoked")
        if stored.is_used:
            return Result.failure(FailureKind.INVALID_TOKEN, "Refresh token already used")
        stored.is_used = True
        self.db.flush()
        tokens = self._token_pair(stored.user)
        self.db.commit()
        logger.info(f"Refreshed tokens for user id={stored.user_id}")
        return Result.success(tokens)

    def logout(self, token: str) -> Result[None]:
        stored = self.db.query(RefreshToken).filter(RefreshToken.token == token).first()
        if stored is None:
            return Result.failure(FailureKind.INVALID_TOKEN, "Invalid refresh token")
        stored.is_revoked = True
        self.db.commit()
        logger.info(f"User id={stored.user_id} logged out")
        return Result.success()
