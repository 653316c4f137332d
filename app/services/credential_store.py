from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from cryptography.fernet import InvalidToken
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.integration import (
    STATUS_CONNECTED,
    STATUS_DISCONNECTED,
    Integration,
)
from app.services.encryption import CredentialCipher
from app.services.errors import CredentialError

logger = logging.getLogger(__name__)


async def get_integration(
    session: AsyncSession, user_id: UUID, provider: str
) -> Optional[Integration]:
    stmt = select(Integration).where(
        Integration.user_id == user_id,
        Integration.provider == provider,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


class CredentialStore:
    """Encrypted per-(user, provider) credentials kept on the Integration row."""

    def __init__(self, session_factory: async_sessionmaker, cipher: CredentialCipher) -> None:
        self.session_factory = session_factory
        self.cipher = cipher

    async def get(self, user_id: UUID, provider: str) -> Optional[str]:
        """Decrypted API key (or OAuth access token), or None when not connected.

        Raises ``CredentialError`` when a stored value no longer decrypts.
        """
        async with self.session_factory() as session:
            integration = await get_integration(session, user_id, provider)
        if not integration:
            return None
        stored = integration.encrypted_api_key or integration.oauth_access_token
        if not stored:
            return None
        try:
            return self.cipher.decrypt(stored)
        except InvalidToken as e:
            raise CredentialError(
                f"Stored {provider} credential for user {user_id} could not be decrypted"
            ) from e

    async def set(
        self, user_id: UUID, provider: str, secret: str, account_id: Optional[str] = None
    ) -> Integration:
        """Store a credential and mark the integration CONNECTED (creating it if needed)."""
        async with self.session_factory() as session:
            integration = await get_integration(session, user_id, provider)
            if integration is None:
                integration = Integration(user_id=user_id, provider=provider)
                session.add(integration)
            integration.encrypted_api_key = self.cipher.encrypt(secret)
            integration.account_id = account_id
            integration.status = STATUS_CONNECTED
            integration.last_sync_error = None
            await session.commit()
            await session.refresh(integration)
            return integration

    async def clear(self, user_id: UUID, provider: str) -> None:
        """Drop the credential; the integration becomes DISCONNECTED."""
        async with self.session_factory() as session:
            integration = await get_integration(session, user_id, provider)
            if integration is None:
                return
            integration.encrypted_api_key = None
            integration.oauth_access_token = None
            integration.oauth_refresh_token = None
            integration.account_id = None
            integration.last_sync_error = None
            integration.status = STATUS_DISCONNECTED
            await session.commit()
