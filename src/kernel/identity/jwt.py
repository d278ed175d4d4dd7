"""
Bearer token verification.

The identity provider signs access tokens with the shared secret from
settings; this service verifies them and reads the subject (user id).
Minting is kept for service-to-service callers and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from src.config import get_settings

TOKEN_TYPE = "access"


class AccessTokenPayload(BaseModel):
    """Claims of a verified access token."""

    sub: str  # User ID
    email: str = ""
    role: str = "learner"
    exp: datetime
    iat: datetime
    jti: str = ""


class JWTManager:
    """Sign and verify HS256 access tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.algorithm
        self.lifetime = timedelta(
            minutes=access_token_expire_minutes or settings.access_token_expire_minutes
        )

    def create_access_token(
        self,
        user_id: uuid.UUID,
        email: str,
        role: str,
        expires_delta: Optional[timedelta] = None,
    ) -> Tuple[str, datetime, str]:
        """
        Sign a token for `user_id`.

        Returns:
            (token, expires_at, token_id)
        """
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + (expires_delta or self.lifetime)
        token_id = str(uuid.uuid4())
        claims = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "iat": issued_at,
            "exp": expires_at,
            "jti": token_id,
            "type": TOKEN_TYPE,
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm), expires_at, token_id

    def verify_access_token(self, token: str) -> Optional[AccessTokenPayload]:
        """Claims of a valid, unexpired access token, else None."""
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None
        if claims.get("type") != TOKEN_TYPE:
            return None
        try:
            return AccessTokenPayload.model_validate(claims)
        except ValidationError:
            return None


_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Process-wide manager built from settings."""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime, str]:
    return get_jwt_manager().create_access_token(user_id, email, role, expires_delta)


def verify_access_token(token: str) -> Optional[AccessTokenPayload]:
    return get_jwt_manager().verify_access_token(token)
