"""
Tests for the authentication service: the bearer gate and the refresh flow.

Run with: pytest tests/test_auth_service.py -v
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.errors import BadRequest, Forbidden, Unauthenticated, ValidationError
from app.db.session import Base
from app.models.user import User, UserRole
from app.schemas.user import UserCreate
from app.services.auth_service import AuthService
from app.services.user_store import UserStore
from conftest import DEFAULT_PASSWORD, tamper


# ============================================
# Bearer gate
# ============================================

class TestAuthenticate:
    """Tests for resolving Authorization headers to users."""

    @pytest.mark.asyncio
    async def test_valid_token(self, db, tokens, create_user):
        user = await create_user(email="gate@example.com")
        auth = AuthService(db, tokens)

        resolved = await auth.authenticate(f"Bearer {tokens.issue_access_token(user)}")
        assert resolved.id == user.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "bearer abc"])
    async def test_missing_token(self, db, tokens, header):
        with pytest.raises(Unauthenticated) as exc_info:
            await AuthService(db, tokens).authenticate(header)
        assert exc_info.value.message == "No token provided"

    @pytest.mark.asyncio
    async def test_expired_token(self, db, tokens, create_user):
        user = await create_user(email="late@example.com")
        token = tokens.issue_access_token(user, expires_delta=timedelta(seconds=-10))

        with pytest.raises(Unauthenticated) as exc_info:
            await AuthService(db, tokens).authenticate(f"Bearer {token}")
        assert exc_info.value.message == "Token expired"

    @pytest.mark.asyncio
    async def test_tampered_token(self, db, tokens, create_user):
        user = await create_user(email="tamper@example.com")
        token = tamper(tokens.issue_access_token(user))

        with pytest.raises(Unauthenticated) as exc_info:
            await AuthService(db, tokens).authenticate(f"Bearer {token}")
        assert exc_info.value.message == "Invalid token"

    @pytest.mark.asyncio
    async def test_deleted_user(self, db, tokens):
        ghost = User(id="gone-0000", email="gone@example.com", name="Gone", role=UserRole.USER)
        token = tokens.issue_access_token(ghost)

        with pytest.raises(Unauthenticated) as exc_info:
            await AuthService(db, tokens).authenticate(f"Bearer {token}")
        assert exc_info.value.message == "User not found"

    @pytest.mark.asyncio
    async def test_deactivated_user(self, db, tokens, create_user):
        """A still-valid token stops working once the account is deactivated."""
        user = await create_user(email="deact@example.com")
        token = tokens.issue_access_token(user)
        auth = AuthService(db, tokens)

        loaded = await UserStore.find_by_id(db, user.id)
        loaded.is_active = False
        await UserStore.save(db, loaded)
        await db.commit()

        with pytest.raises(Unauthenticated) as exc_info:
            await auth.authenticate(f"Bearer {token}")
        assert exc_info.value.message == "Account deactivated"

    @pytest.mark.asyncio
    async def test_optional_auth_falls_back_to_anonymous(self, db, tokens, create_user):
        user = await create_user(email="opt@example.com")
        auth = AuthService(db, tokens)

        assert await auth.authenticate_optional(None) is None
        assert await auth.authenticate_optional("Bearer garbage") is None
        resolved = await auth.authenticate_optional(f"Bearer {tokens.issue_access_token(user)}")
        assert resolved.id == user.id

    def test_require_admin(self):
        admin = User(email="boss@example.com", name="Boss", role=UserRole.ADMIN)
        member = User(email="pleb@example.com", name="Pleb", role=UserRole.USER)

        assert AuthService.require_admin(admin) is admin
        with pytest.raises(Forbidden) as exc_info:
            AuthService.require_admin(member)
        assert exc_info.value.message == "Admin privileges required"
        with pytest.raises(Forbidden):
            AuthService.require_admin(None)


# ============================================
# Registration and login
# ============================================

class TestRegisterAndLogin:

    @pytest.mark.asyncio
    async def test_register_then_login(self, db, tokens):
        auth = AuthService(db, tokens)
        user = await auth.register(UserCreate(name="New", email="New@Example.com", password="secret123"))
        await db.commit()

        assert user.email == "new@example.com"
        assert user.role == UserRole.USER
        logged_in = await auth.login("new@example.com", "secret123")
        assert logged_in.id == user.id

    @pytest.mark.asyncio
    async def test_register_duplicate_email(self, db, tokens, create_user):
        await create_user(email="taken@example.com")
        with pytest.raises(ValidationError) as exc_info:
            await AuthService(db, tokens).register(
                UserCreate(name="Dup", email="taken@example.com", password="secret123")
            )
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Email already registered"


# ============================================
# Refresh flow
# ============================================

class TestRefresh:
    """Tests for refresh, rotation, logout and revocation."""

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, db, tokens):
        with pytest.raises(BadRequest) as exc_info:
            await AuthService(db, tokens).refresh(None)
        assert exc_info.value.message == "Refresh token is required"

    @pytest.mark.asyncio
    async def test_rotation_revokes_presented_token(self, db, tokens, create_user):
        user = await create_user(email="rot@example.com")
        auth = AuthService(db, tokens, rotate_refresh_tokens=True)
        issued = await auth.create_tokens(user)

        refreshed = await auth.refresh(issued.refresh_token)
        assert refreshed.refresh_token != issued.refresh_token
        assert tokens.decode_access_token(refreshed.access_token)["sub"] == user.id

        with pytest.raises(Unauthenticated) as exc_info:
            await auth.refresh(issued.refresh_token)
        assert exc_info.value.message == "Invalid refresh token"

        again = await auth.refresh(refreshed.refresh_token)
        assert again.access_token
        assert await UserStore.count_refresh_tokens(db, user.id) == 1

    @pytest.mark.asyncio
    async def test_legacy_mode_reuses_token(self, db, tokens, create_user):
        user = await create_user(email="legacy@example.com")
        auth = AuthService(db, tokens, rotate_refresh_tokens=False)
        issued = await auth.create_tokens(user)

        first = await auth.refresh(issued.refresh_token)
        second = await auth.refresh(issued.refresh_token)
        assert first.refresh_token == issued.refresh_token
        assert second.refresh_token == issued.refresh_token

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, db, tokens, create_user):
        user = await create_user(email="bye@example.com")
        auth = AuthService(db, tokens)
        issued = await auth.create_tokens(user)

        assert await auth.logout(user, issued.refresh_token) is True
        with pytest.raises(Unauthenticated) as exc_info:
            await auth.refresh(issued.refresh_token)
        assert exc_info.value.message == "Invalid refresh token"

    @pytest.mark.asyncio
    async def test_logout_ignores_foreign_or_bad_tokens(self, db, tokens, create_user):
        alice = await create_user(email="alice@example.com")
        bob = await create_user(email="bob@example.com")
        auth = AuthService(db, tokens)
        bobs = await auth.create_tokens(bob)

        assert await auth.logout(alice, bobs.refresh_token) is False
        assert await auth.logout(alice, "garbage") is False
        assert await auth.logout(alice, None) is False
        assert (await auth.refresh(bobs.refresh_token)).access_token

    @pytest.mark.asyncio
    async def test_logout_all(self, db, tokens, create_user):
        user = await create_user(email="all@example.com")
        auth = AuthService(db, tokens)
        sessions = [await auth.create_tokens(user) for _ in range(3)]

        assert await auth.logout_all(user) == 3
        for issued in sessions:
            with pytest.raises(Unauthenticated):
                await auth.refresh(issued.refresh_token)

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, db, tokens, create_user):
        user = await create_user(email="cross@example.com")
        auth = AuthService(db, tokens)
        issued = await auth.create_tokens(user)

        with pytest.raises(Unauthenticated) as exc_info:
            await auth.refresh(issued.access_token)
        assert exc_info.value.message == "Invalid or expired refresh token"

    @pytest.mark.asyncio
    async def test_refresh_token_cannot_authenticate(self, db, tokens, create_user):
        user = await create_user(email="cross2@example.com")
        auth = AuthService(db, tokens)
        issued = await auth.create_tokens(user)

        with pytest.raises(Unauthenticated) as exc_info:
            await auth.authenticate(f"Bearer {issued.refresh_token}")
        assert exc_info.value.message == "Invalid token"

    @pytest.mark.asyncio
    async def test_deactivated_user_cannot_refresh(self, db, tokens, create_user):
        user = await create_user(email="frozen@example.com")
        auth = AuthService(db, tokens)
        issued = await auth.create_tokens(user)

        loaded = await UserStore.find_by_id(db, user.id)
        loaded.is_active = False
        await UserStore.save(db, loaded)

        with pytest.raises(Unauthenticated) as exc_info:
            await auth.refresh(issued.refresh_token)
        assert exc_info.value.message == "Account deactivated"

    @pytest.mark.asyncio
    async def test_change_password_ends_sessions(self, db, tokens, create_user):
        user = await create_user(email="pw@example.com")
        auth = AuthService(db, tokens)
        issued = await auth.create_tokens(user)

        with pytest.raises(BadRequest):
            await auth.change_password(user, "wrong-one", "newsecret1")

        await auth.change_password(user, DEFAULT_PASSWORD, "newsecret1")
        await db.commit()

        with pytest.raises(Unauthenticated):
            await auth.refresh(issued.refresh_token)
        assert (await auth.login("pw@example.com", "newsecret1")).id == user.id
        with pytest.raises(Unauthenticated):
            await auth.login("pw@example.com", DEFAULT_PASSWORD)


# ============================================
# Concurrent sessions
# ============================================

class TestConcurrentLogins:
    """Two sessions logging in the same user must both keep their refresh token."""

    @pytest.mark.asyncio
    async def test_interleaved_logins_keep_both_tokens(self, tmp_path, tokens):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with factory() as setup:
                user = User(email="race@example.com", name="Race")
                user.password = DEFAULT_PASSWORD
                setup.add(user)
                await setup.commit()

            async with factory() as first, factory() as second:
                # Both sessions read the user before either writes
                user_a = await UserStore.find_by_id(first, user.id)
                user_b = await UserStore.find_by_id(second, user.id)

                token_a = await tokens.issue_refresh_token(first, user_a)
                await first.commit()
                token_b = await tokens.issue_refresh_token(second, user_b)
                await second.commit()

            async with factory() as check:
                auth = AuthService(check, tokens, rotate_refresh_tokens=False)
                assert await UserStore.count_refresh_tokens(check, user.id) == 2
                assert (await auth.refresh(token_a)).refresh_token == token_a
                assert (await auth.refresh(token_b)).refresh_token == token_b
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_same_refresh_token_redeemed_once(self, tmp_path, tokens, monkeypatch):
        """Two requests verifying one token before either rotates: only the first wins."""
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'replay.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with factory() as setup:
                user = User(email="replay@example.com", name="Replay")
                user.password = DEFAULT_PASSWORD
                setup.add(user)
                await setup.commit()
                token = await tokens.issue_refresh_token(setup, user)
                await setup.commit()

            async with factory() as first, factory() as second:
                auth_a = AuthService(first, tokens, rotate_refresh_tokens=True)
                auth_b = AuthService(second, tokens, rotate_refresh_tokens=True)

                # Request B passes verification, then stalls until A is done
                verified_b = await auth_b.verify_refresh_token(token)

                async def already_verified(refresh_token):
                    return verified_b

                monkeypatch.setattr(auth_b, "verify_refresh_token", already_verified)

                rotated = await auth_a.refresh(token)
                await first.commit()

                with pytest.raises(Unauthenticated) as exc_info:
                    await auth_b.refresh(token)
                assert exc_info.value.message == "Invalid refresh token"
                await second.rollback()

            async with factory() as check:
                assert await UserStore.count_refresh_tokens(check, user.id) == 1
                auth = AuthService(check, tokens, rotate_refresh_tokens=True)
                assert (await auth.refresh(rotated.refresh_token)).access_token
        finally:
            await engine.dispose()
