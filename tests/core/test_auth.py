import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import auth_headers, make_user
from fee_ledger.core.audit.models import AuditLog
from fee_ledger.core.auth.models import UserRole
from fee_ledger.core.auth.service import AuthService
from fee_ledger.core.exceptions import AuthenticationError, DuplicateError


class TestAuthService:
    """Tests for AuthService."""

    async def test_create_user_hashes_password(self, db_session: AsyncSession):
        user = await AuthService(db_session).create_user(
            email="bursar@school.com",
            password="Ledger123!",
            full_name="School Bursar",
            role=UserRole.ACCOUNTANT,
        )

        assert user.id is not None
        assert user.role == "Accountant"
        assert user.is_active is True
        assert user.password_hash != "Ledger123!"

    async def test_duplicate_email(self, db_session: AsyncSession):
        service = AuthService(db_session)
        await service.create_user("bursar@school.com", "Ledger123!", "Bursar", UserRole.ACCOUNTANT)

        with pytest.raises(DuplicateError) as exc_info:
            await service.create_user("bursar@school.com", "Other123!", "Other", UserRole.USER)

        assert "already exists" in exc_info.value.message

    async def test_authenticate_records_login(self, db_session: AsyncSession):
        service = AuthService(db_session)
        await service.create_user("bursar@school.com", "Ledger123!", "Bursar", UserRole.ACCOUNTANT)

        user, access_token, refresh_token = await service.authenticate(
            "bursar@school.com", "Ledger123!", ip_address="10.0.0.7"
        )

        assert user.last_login_at is not None
        assert access_token and refresh_token
        result = await db_session.execute(
            select(AuditLog.ip_address).where(AuditLog.action == "LOGIN")
        )
        assert result.scalars().all() == ["10.0.0.7"]

    async def test_wrong_password(self, db_session: AsyncSession):
        service = AuthService(db_session)
        await service.create_user("bursar@school.com", "Ledger123!", "Bursar", UserRole.ACCOUNTANT)

        with pytest.raises(AuthenticationError):
            await service.authenticate("bursar@school.com", "ledger123!")

    async def test_inactive_user(self, db_session: AsyncSession):
        service = AuthService(db_session)
        user = await service.create_user(
            "bursar@school.com", "Ledger123!", "Bursar", UserRole.ACCOUNTANT
        )
        user.is_active = False
        await db_session.flush()

        with pytest.raises(AuthenticationError) as exc_info:
            await service.authenticate("bursar@school.com", "Ledger123!")

        assert "deactivated" in exc_info.value.message


class TestAuthEndpoints:
    """Tests for the auth API."""

    async def test_login_refresh_me(self, client: AsyncClient, db_session: AsyncSession):
        await make_user(db_session, "bursar@school.com", UserRole.ACCOUNTANT)

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "bursar@school.com", "password": "Test123!"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["role"] == "Accountant"

        response = await client.post(
            "/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]}
        )
        assert response.status_code == 200
        access_token = response.json()["data"]["access_token"]

        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {access_token}"}
        )
        assert response.status_code == 200
        assert response.json()["data"]["email"] == "bursar@school.com"

    async def test_access_token_cannot_refresh(self, client: AsyncClient, db_session: AsyncSession):
        user = await make_user(db_session, "bursar@school.com", UserRole.ACCOUNTANT)
        access_token = auth_headers(user)["Authorization"].removeprefix("Bearer ")

        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})

        assert response.status_code == 401

    async def test_login_wrong_credentials(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@school.com", "password": "Nope123!"},
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_read_only_user_cannot_write(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        viewer = await make_user(db_session, "viewer@school.com", UserRole.USER)

        response = await client.post(
            "/api/v1/payment-methods", json={"name": "cash"}, headers=auth_headers(viewer)
        )

        assert response.status_code == 403
