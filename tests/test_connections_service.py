"""Tests for the credential store: token validity, refresh, and refresh races."""

import asyncio
import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from creatorpulse.adapters.types import TokenPair
from creatorpulse.core.encryption import decrypt, encrypt
from creatorpulse.core.exceptions import CredentialError
from creatorpulse.models.platform_connection import PlatformConnection
from creatorpulse.services.connections import (
    _lock_for,
    _refresh_locks,
    get_valid_access_token,
    refresh_expiring_connections,
    require_connection,
    upsert_connection,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _make_connection(
    id: int = 1,
    expires_at: datetime | None = None,
    refresh_token: str | None = "refresh-1",
    status: str = "active",
) -> PlatformConnection:
    conn = PlatformConnection(
        user_id=1,
        platform="twitter",
        platform_user_id="42",
        access_token_enc=encrypt("access-old"),
        refresh_token_enc=encrypt(refresh_token) if refresh_token else None,
        token_expires_at=expires_at,
        token_version=0,
        status=status,
    )
    object.__setattr__(conn, "id", id)
    return conn


def _mock_db(rowcount: int = 1) -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    result = MagicMock()
    result.rowcount = rowcount
    db.execute = AsyncMock(return_value=result)
    return db


def _adapter(pair: TokenPair | None = None, error: Exception | None = None) -> MagicMock:
    adapter = MagicMock()
    adapter.refresh_tokens = AsyncMock(return_value=pair, side_effect=error)
    return adapter


NEW_PAIR = TokenPair("access-new", "refresh-2", NOW + timedelta(hours=2))


@pytest.mark.usefixtures("encryption_key")
class TestGetValidAccessToken:
    @pytest.mark.asyncio
    async def test_unexpired_token_used_directly(self):
        conn = _make_connection(expires_at=NOW + timedelta(hours=1))
        db = _mock_db()

        with patch("creatorpulse.services.connections.get_adapter") as get_adapter:
            token = await get_valid_access_token(db, conn, NOW)

        assert token == "access-old"
        get_adapter.assert_not_called()
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_token_without_expiry_never_refreshed(self):
        conn = _make_connection(expires_at=None)
        assert await get_valid_access_token(_mock_db(), conn, NOW) == "access-old"

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_and_persisted(self):
        conn = _make_connection(expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=1)
        adapter = _adapter(NEW_PAIR)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            token = await get_valid_access_token(db, conn, NOW)

        assert token == "access-new"
        adapter.refresh_tokens.assert_awaited_once_with("refresh-1")
        # Conditional update on the version read before refreshing
        stmt = db.execute.await_args.args[0]
        assert "token_version" in str(stmt)
        db.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_lost_race_uses_winning_token(self):
        conn = _make_connection(id=2, expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=0)
        refresh_calls = 0

        async def reload(obj):
            nonlocal refresh_calls
            refresh_calls += 1
            if refresh_calls > 1:
                # Another process stored its refreshed token first
                obj.access_token_enc = encrypt("access-winner")
                obj.token_expires_at = NOW + timedelta(hours=2)
                obj.token_version = 1

        db.refresh = AsyncMock(side_effect=reload)

        with patch("creatorpulse.services.connections.get_adapter", return_value=_adapter(NEW_PAIR)):
            token = await get_valid_access_token(db, conn, NOW)

        assert token == "access-winner"

    @pytest.mark.asyncio
    async def test_rejected_refresh_marks_expired(self):
        conn = _make_connection(id=3, expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=1)
        adapter = _adapter(error=CredentialError("twitter", "Token refresh rejected"))

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            with pytest.raises(CredentialError, match="rejected"):
                await get_valid_access_token(db, conn, NOW)

        assert conn.status == "expired"
        # Expiry is only written if nobody stored new tokens meanwhile
        stmt = db.execute.await_args.args[0]
        assert "token_version" in str(stmt)

    @pytest.mark.asyncio
    async def test_rejected_refresh_after_concurrent_rotation_uses_new_token(self):
        conn = _make_connection(id=8, expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=1)
        adapter = _adapter(error=CredentialError("twitter", "Token refresh rejected"))

        async def reload(obj):
            if adapter.refresh_tokens.await_count:
                # Another worker rotated the refresh token and stored a new pair
                obj.access_token_enc = encrypt("access-rotated")
                obj.token_expires_at = NOW + timedelta(hours=2)
                obj.token_version = 1

        db.refresh = AsyncMock(side_effect=reload)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            token = await get_valid_access_token(db, conn, NOW)

        assert token == "access-rotated"
        assert conn.status == "active"
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_refresh_loses_expiry_write_to_rotation(self):
        conn = _make_connection(id=9, expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=0)
        adapter = _adapter(error=CredentialError("twitter", "Token refresh rejected"))
        reloads = 0

        async def reload(obj):
            nonlocal reloads
            reloads += 1
            if reloads == 3:
                # New tokens landed between the rejection and the expiry write
                obj.access_token_enc = encrypt("access-late")
                obj.token_expires_at = NOW + timedelta(hours=2)
                obj.token_version = 1

        db.refresh = AsyncMock(side_effect=reload)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            token = await get_valid_access_token(db, conn, NOW)

        assert token == "access-late"
        assert conn.status == "active"

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self):
        conn = _make_connection(id=4, expires_at=NOW - timedelta(minutes=1), refresh_token=None)

        with pytest.raises(CredentialError, match="expired"):
            await get_valid_access_token(_mock_db(), conn, NOW)
        assert conn.status == "expired"

    @pytest.mark.asyncio
    async def test_revoked_connection(self):
        conn = _make_connection(id=5, expires_at=NOW + timedelta(hours=1), status="revoked")
        with pytest.raises(CredentialError, match="revoked"):
            await get_valid_access_token(_mock_db(), conn, NOW)

    @pytest.mark.asyncio
    async def test_concurrent_callers_refresh_once(self):
        conn = _make_connection(id=6, expires_at=NOW - timedelta(minutes=1))
        db = _mock_db(rowcount=1)
        refreshed: list[TokenPair] = []

        async def refresh_tokens(refresh_token):
            await asyncio.sleep(0)
            refreshed.append(NEW_PAIR)
            return NEW_PAIR

        async def reload(obj):
            if refreshed:
                obj.access_token_enc = encrypt(refreshed[-1].access_token)
                obj.token_expires_at = refreshed[-1].expires_at

        adapter = MagicMock()
        adapter.refresh_tokens = AsyncMock(side_effect=refresh_tokens)
        db.refresh = AsyncMock(side_effect=reload)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            tokens = await asyncio.gather(
                get_valid_access_token(db, conn, NOW),
                get_valid_access_token(db, conn, NOW),
            )

        assert tokens == ["access-new", "access-new"]
        adapter.refresh_tokens.assert_awaited_once()


class TestRequireConnection:
    @pytest.mark.asyncio
    async def test_missing_connection(self):
        db = AsyncMock()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute = AsyncMock(return_value=result)

        with pytest.raises(CredentialError, match="No linkedin account connected"):
            await require_connection(db, 1, "linkedin")


@pytest.mark.usefixtures("encryption_key")
class TestUpsertConnection:
    @pytest.mark.asyncio
    async def test_new_connection_stores_encrypted_tokens(self):
        db = _mock_db()
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        db.execute = AsyncMock(return_value=result)

        conn = await upsert_connection(
            db, 1, "threads", "999", TokenPair("a-token", None, NOW), scopes=["threads_basic"]
        )

        db.add.assert_called_once_with(conn)
        assert conn.access_token_enc != "a-token"
        assert decrypt(conn.access_token_enc) == "a-token"
        assert conn.refresh_token_enc is None
        assert conn.token_version == 0
        assert conn.scopes == ["threads_basic"]

    @pytest.mark.asyncio
    async def test_reconnect_bumps_version(self):
        existing = _make_connection(id=7, status="expired")
        db = _mock_db()
        result = MagicMock()
        result.scalar_one_or_none.return_value = existing
        db.execute = AsyncMock(return_value=result)

        conn = await upsert_connection(db, 1, "twitter", "42", TokenPair("fresh", "r", None))

        assert conn is existing
        assert conn.token_version == 1
        assert conn.status == "active"
        assert decrypt(conn.refresh_token_enc) == "r"
        db.add.assert_not_called()


def _expiring_db(connections: list[PlatformConnection], rowcount: int = 1) -> AsyncMock:
    db = _mock_db(rowcount)
    listing = MagicMock()
    listing.scalars.return_value.all.return_value = connections
    update_result = MagicMock()
    update_result.rowcount = rowcount
    db.execute = AsyncMock(side_effect=[listing] + [update_result] * 10)
    return db


@pytest.mark.usefixtures("encryption_key")
class TestRefreshExpiringConnections:
    @pytest.mark.asyncio
    async def test_refreshes_tokens_inside_the_window(self):
        conn = _make_connection(id=20, expires_at=NOW + timedelta(minutes=30))
        db = _expiring_db([conn])
        adapter = _adapter(NEW_PAIR)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            summary = await refresh_expiring_connections(db, NOW)

        assert (summary.refreshed, summary.failed) == (1, 0)
        adapter.refresh_tokens.assert_awaited_once_with("refresh-1")
        listing = str(db.execute.await_args_list[0].args[0])
        assert "token_expires_at <" in listing
        assert "status" in listing

    @pytest.mark.asyncio
    async def test_already_refreshed_connection_skipped(self):
        conn = _make_connection(id=21, expires_at=NOW + timedelta(minutes=30))
        db = _expiring_db([conn])
        adapter = _adapter(NEW_PAIR)

        async def reload(obj):
            # Refreshed by a request between the listing and the lock
            obj.token_expires_at = NOW + timedelta(days=60)

        db.refresh = AsyncMock(side_effect=reload)

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            summary = await refresh_expiring_connections(db, NOW)

        assert summary.refreshed == 1
        adapter.refresh_tokens.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_counted_and_loop_continues(self):
        rejected = _make_connection(id=22, expires_at=NOW + timedelta(minutes=10))
        healthy = _make_connection(id=23, expires_at=NOW + timedelta(minutes=40))
        db = _expiring_db([rejected, healthy])
        adapter = MagicMock()
        adapter.refresh_tokens = AsyncMock(
            side_effect=[CredentialError("twitter", "Token refresh rejected"), NEW_PAIR]
        )

        with patch("creatorpulse.services.connections.get_adapter", return_value=adapter):
            summary = await refresh_expiring_connections(db, NOW)

        assert (summary.refreshed, summary.failed) == (1, 1)
        assert rejected.status == "expired"
        assert healthy.status == "active"


def test_refresh_locks_released_when_unused():
    lock = _lock_for(99)
    assert _lock_for(99) is lock

    del lock
    gc.collect()

    assert 99 not in _refresh_locks
