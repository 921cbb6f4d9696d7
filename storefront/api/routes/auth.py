"""
Authentication routes.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.core.auth_service import AuthService
from storefront.database.connection import get_db
from storefront.database.models import User

from ..dependencies import get_auth_service, get_current_user
from ..schemas import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an account",
)
async def register(
    request: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Create an unverified account and send the verification email."""
    return await auth.register(
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        password=request.password,
        confirm_password=request.confirm_password,
        db=db,
    )


@router.get("/verify-email", summary="Verify email address")
async def verify_email(
    token: Optional[str] = Query(default=None),
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    """Verify the account and send the browser to the storefront."""
    await auth.verify_email(token, db)
    return RedirectResponse(
        url=f"{get_settings().client_url}/email-verified",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.post("/login", summary="Log in")
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await auth.login(request.email, request.password, db)


@router.post("/logout", response_model=MessageResponse, summary="Log out")
async def logout(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    """Tokens are stateless; the client discards them."""
    logger.info("user_logged_out", user_id=str(user.id))
    return {"message": "Logged out successfully"}


@router.post("/refresh-token", summary="Refresh the access token")
async def refresh_token(
    request: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await auth.refresh(request.refresh_token, db)


@router.post("/forgot-password", response_model=MessageResponse, summary="Request a reset link")
async def forgot_password(
    request: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await auth.forgot_password(request.email or "", db)


@router.post(
    "/reset-password/{token}",
    response_model=MessageResponse,
    summary="Reset password with a token",
)
async def reset_password(
    token: str,
    request: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await auth.reset_password(token, request.password, request.confirm_password, db)


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    summary="Resend the verification email",
)
async def resend_verification(
    request: EmailRequest,
    auth: AuthService = Depends(get_auth_service),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await auth.resend_verification(request.email, db)
