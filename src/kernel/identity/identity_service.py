"""
Identity service for resolving bearer tokens to user rows.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.user import User
from src.kernel.identity.jwt import JWTManager


class IdentityService:
    """
    Service for user identity lookups.

    Accounts are created by the identity provider; this service never
    writes them.
    """

    def __init__(self, session: AsyncSession, jwt_manager: Optional[JWTManager] = None):
        self.session = session
        self.jwt_manager = jwt_manager or JWTManager()

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get a user by ID."""
        result = await self.session.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def resolve_token(self, token: str) -> Optional[User]:
        """
        Verify a bearer token and load its user.

        Returns None for an invalid token, a malformed subject or an
        unknown user. Inactive users are returned; the caller decides.
        """
        payload = self.jwt_manager.verify_access_token(token)
        if payload is None:
            return None
        try:
            user_id = uuid.UUID(payload.sub)
        except ValueError:
            return None
        return await self.get_user_by_id(user_id)
