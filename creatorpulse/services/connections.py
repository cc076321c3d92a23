"""Credential store: platform connections and access-token lifecycle.

Tokens are persisted Fernet-encrypted. Expired access tokens are refreshed
through the platform adapter; the refresh-and-persist step is serialized per
connection inside the process and guarded by a compare-and-swap on
``token_version`` across processes.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from creatorpulse.adapters import TokenPair, get_adapter
from creatorpulse.core.config import settings
from creatorpulse.core.encryption import decrypt, encrypt
from creatorpulse.core.exceptions import AdapterError, CredentialError, StoreError
from creatorpulse.db.errors import store_operation
from creatorpulse.models.platform_connection import PlatformConnection

logger = logging.getLogger(__name__)

# Entries disappear once no task holds or awaits the lock
_refresh_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(connection_id: int) -> asyncio.Lock:
    lock = _refresh_locks.get(connection_id)
    if lock is None:
        lock = asyncio.Lock()
        _refresh_locks[connection_id] = lock
    return lock


@store_operation
async def get_connection(
    db: AsyncSession, user_id: int, platform: str
) -> PlatformConnection | None:
    result = await db.execute(
        select(PlatformConnection).where(
            PlatformConnection.user_id == user_id,
            PlatformConnection.platform == platform,
        )
    )
    return result.scalar_one_or_none()


async def require_connection(db: AsyncSession, user_id: int, platform: str) -> PlatformConnection:
    """Like get_connection, but a missing or revoked connection is a CredentialError."""
    connection = await get_connection(db, user_id, platform)
    if connection is None:
        raise CredentialError(platform, f"No {platform} account connected")
    if connection.status == "revoked":
        raise CredentialError(platform, f"{platform} access was revoked; reconnect the account")
    return connection


@store_operation
async def list_active_connections(
    db: AsyncSession, platform: str | None = None
) -> list[PlatformConnection]:
    query = select(PlatformConnection).where(PlatformConnection.status == "active")
    if platform is not None:
        query = query.where(PlatformConnection.platform == platform)
    result = await db.execute(query.order_by(PlatformConnection.id))
    return list(result.scalars().all())


@store_operation
async def upsert_connection(
    db: AsyncSession,
    user_id: int,
    platform: str,
    platform_user_id: str,
    tokens: TokenPair,
    platform_username: str | None = None,
    scopes: list[str] | None = None,
) -> PlatformConnection:
    """Store the result of an OAuth handshake, replacing any previous tokens."""
    connection = await get_connection(db, user_id, platform)
    if connection is None:
        connection = PlatformConnection(
            user_id=user_id,
            platform=platform,
            token_version=0,
        )
        db.add(connection)
    else:
        connection.token_version += 1

    connection.platform_user_id = platform_user_id
    connection.platform_username = platform_username
    connection.access_token_enc = encrypt(tokens.access_token)
    connection.refresh_token_enc = encrypt(tokens.refresh_token) if tokens.refresh_token else None
    connection.token_expires_at = tokens.expires_at
    connection.scopes = scopes or []
    connection.status = "active"
    connection.connected_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(connection)
    logger.info("Connected %s account for user %d", platform, user_id)
    return connection


@store_operation
async def update_tokens(
    db: AsyncSession,
    connection: PlatformConnection,
    tokens: TokenPair,
    expected_version: int,
) -> bool:
    """Write refreshed tokens only if nobody else did since ``expected_version``.

    Returns False when the compare-and-swap lost; the caller should reload.
    """
    values = {
        "access_token_enc": encrypt(tokens.access_token),
        "token_expires_at": tokens.expires_at,
        "token_version": PlatformConnection.token_version + 1,
        "status": "active",
    }
    # Platforms that do not rotate refresh tokens omit them from the response
    if tokens.refresh_token:
        values["refresh_token_enc"] = encrypt(tokens.refresh_token)

    result = await db.execute(
        update(PlatformConnection)
        .where(
            PlatformConnection.id == connection.id,
            PlatformConnection.token_version == expected_version,
        )
        .values(**values)
    )
    await db.commit()
    return result.rowcount == 1


@store_operation
async def mark_expired(
    db: AsyncSession, connection: PlatformConnection, expected_version: int
) -> bool:
    """Flag the connection expired unless its tokens changed since ``expected_version``.

    Returns False when another writer stored new tokens first.
    """
    result = await db.execute(
        update(PlatformConnection)
        .where(
            PlatformConnection.id == connection.id,
            PlatformConnection.token_version == expected_version,
        )
        .values(status="expired")
    )
    await db.commit()
    if result.rowcount != 1:
        return False
    connection.status = "expired"
    return True


def _usable(connection: PlatformConnection, at: datetime | None) -> bool:
    return (
        connection.status != "revoked"
        and bool(connection.access_token_enc)
        and not connection.is_expired(at)
    )


async def get_valid_access_token(
    db: AsyncSession,
    connection: PlatformConnection,
    now: datetime | None = None,
) -> str:
    """Return a usable plaintext access token, refreshing it when expired.

    Raises CredentialError when the connection is revoked, has no refresh
    token, or the platform rejects the refresh.
    """
    platform = connection.platform
    if connection.status == "revoked":
        raise CredentialError(platform, f"{platform} access was revoked; reconnect the account")
    if _usable(connection, now):
        return decrypt(connection.access_token_enc, platform)

    return await _refresh_access_token(db, connection, now, valid_until=now)


async def _refresh_access_token(
    db: AsyncSession,
    connection: PlatformConnection,
    now: datetime | None,
    valid_until: datetime | None,
) -> str:
    """Refresh unless the stored token already outlives ``valid_until``."""
    platform = connection.platform

    async with _lock_for(connection.id):
        # Another task may have refreshed while we waited for the lock
        await db.refresh(connection)
        if connection.status == "revoked":
            raise CredentialError(platform, f"{platform} access was revoked; reconnect the account")
        if _usable(connection, valid_until):
            return decrypt(connection.access_token_enc, platform)

        expected_version = connection.token_version
        if not connection.refresh_token_enc:
            await mark_expired(db, connection, expected_version)
            raise CredentialError(platform, f"{platform} token expired; reconnect the account")

        adapter = get_adapter(platform)
        try:
            tokens = await adapter.refresh_tokens(decrypt(connection.refresh_token_enc, platform))
        except CredentialError:
            # A rotated refresh token is rejected when another process refreshed first
            await db.refresh(connection)
            if connection.token_version != expected_version and _usable(connection, now):
                logger.info(
                    "Refresh rejected but connection %d was refreshed concurrently", connection.id
                )
                return decrypt(connection.access_token_enc, platform)

            logger.warning("Refresh rejected for %s connection %d", platform, connection.id)
            if not await mark_expired(db, connection, expected_version):
                await db.refresh(connection)
                if _usable(connection, now):
                    return decrypt(connection.access_token_enc, platform)
            raise

        if await update_tokens(db, connection, tokens, expected_version):
            logger.info("Refreshed %s token for connection %d", platform, connection.id)
            await db.refresh(connection)
            return tokens.access_token

        # Lost the race to another process: use the token it stored
        logger.info("Concurrent refresh detected for connection %d, reloading", connection.id)
        await db.refresh(connection)
        if not connection.access_token_enc:
            raise CredentialError(platform, f"{platform} token missing after refresh")
        return decrypt(connection.access_token_enc, platform)


@dataclass
class RefreshSummary:
    refreshed: int = 0
    failed: int = 0


@store_operation
async def _expiring_connections(db: AsyncSession, horizon: datetime) -> list[PlatformConnection]:
    result = await db.execute(
        select(PlatformConnection)
        .where(
            PlatformConnection.status == "active",
            PlatformConnection.token_expires_at.is_not(None),
            PlatformConnection.token_expires_at < horizon,
        )
        .order_by(PlatformConnection.token_expires_at)
    )
    return list(result.scalars().all())


async def refresh_expiring_connections(
    db: AsyncSession, now: datetime | None = None
) -> RefreshSummary:
    """Refresh every active connection whose token expires soon.

    Long-lived tokens (Threads) can only be refreshed while still valid, so
    this runs ahead of expiry instead of waiting for a request to need it.
    """
    now = now or datetime.now(timezone.utc)
    horizon = now + timedelta(minutes=settings.token_refresh_ahead_minutes)
    summary = RefreshSummary()

    for connection in await _expiring_connections(db, horizon):
        try:
            await _refresh_access_token(db, connection, now, valid_until=horizon)
        except StoreError:
            raise
        except (CredentialError, AdapterError) as exc:
            summary.failed += 1
            logger.warning(
                "Proactive refresh failed for %s connection %d: %s",
                connection.platform,
                connection.id,
                exc,
            )
            continue
        summary.refreshed += 1

    logger.info(
        "Token refresh cycle: %d refreshed, %d failed", summary.refreshed, summary.failed
    )
    return summary
