"""Staff login and token refresh."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.core.auth.dependencies import CurrentUser
from fee_ledger.core.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from fee_ledger.core.auth.service import AuthService
from fee_ledger.core.database import get_db
from fee_ledger.shared.schemas import SuccessResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=SuccessResponse[LoginResponse])
async def login(request: Request, data: LoginRequest, db: AsyncSession = Depends(get_db)):
    user, access_token, refresh_token = await AuthService(db).authenticate(
        data.email,
        data.password,
        ip_address=request.client.host if request.client else None,
    )
    return SuccessResponse(
        data=LoginResponse(
            user=UserResponse.model_validate(user),
            access_token=access_token,
            refresh_token=refresh_token,
        ),
        message="Login successful",
    )


@router.post("/refresh", response_model=SuccessResponse[TokenResponse])
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    access_token, refresh_token = await AuthService(db).refresh_tokens(data.refresh_token)
    return SuccessResponse(data=TokenResponse(access_token=access_token, refresh_token=refresh_token))


@router.get("/me", response_model=SuccessResponse[UserResponse])
async def me(current_user: CurrentUser):
    """The staff account behind the bearer token."""
    return SuccessResponse(data=UserResponse.model_validate(current_user))
