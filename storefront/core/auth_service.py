"""
Account lifecycle: registration, email verification, login, token refresh
and password reset.
"""
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import get_settings
from storefront.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from storefront.core.security import (
    PASSWORD_RULE,
    REFRESH,
    VERIFY,
    create_access_token,
    create_refresh_token,
    create_verification_token,
    decode_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    is_strong_password,
    token_user_id,
    verify_password,
)
from storefront.core.serializers import user_to_dict
from storefront.database.models import User, utcnow
from storefront.integrations.email_client import EmailSender

logger = structlog.get_logger(__name__)

PASSWORD_MISMATCH = "Password and Confirm Password do not match."


def check_new_password(password: str, confirm_password: Optional[str]) -> None:
    """
    Raises:
        ValidationError: If the passwords differ or the password is weak
    """
    if password != confirm_password:
        raise ValidationError(PASSWORD_MISMATCH)
    if not is_strong_password(password):
        raise ValidationError(PASSWORD_RULE)


class AuthService:
    """
    Authentication workflows.

    Token-bearing emails are sent through ``EmailSender``; a failed send does
    not fail the request.
    """

    def __init__(self, email_sender: Optional[EmailSender] = None):
        """
        Args:
            email_sender: Optional email sender
        """
        self.settings = get_settings()
        self.email_sender = email_sender or EmailSender()

    @staticmethod
    async def get_by_email(email: str, db: AsyncSession) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    def _verification_link(self, token: str) -> str:
        return f"{self.settings.api_base_url}/api/auth/verify-email?token={token}"

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        confirm_password: str,
        db: AsyncSession,
    ) -> Dict[str, Any]:
        """
        Create an unverified account and email a verification link.

        Raises:
            ValidationError: If the password is weak or not confirmed
            ConflictError: If the email is already registered
        """
        check_new_password(password, confirm_password)

        if await self.get_by_email(email, db) is not None:
            raise ConflictError("Email already exists")

        user = User(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip().lower(),
            password_hash=hash_password(password),
            is_verified=False,
        )
        db.add(user)
        await db.flush()

        token = create_verification_token(user.id, email=user.email)
        await self.email_sender.send_verification(
            user.email, user.first_name, self._verification_link(token)
        )

        logger.info("user_registered", user_id=str(user.id))
        return {
            "message": "User registered, verification email sent",
        }

    async def verify_email(self, token: Optional[str], db: AsyncSession) -> Dict[str, Any]:
        """
        Mark the account named by a verification token as verified.

        Raises:
            ValidationError: If the token is missing, invalid or expired
        """
        if not token:
            raise ValidationError("Invalid or expired token")
        try:
            user_id = token_user_id(decode_token(token, VERIFY))
        except AuthenticationError:
            raise ValidationError("Invalid or expired token")

        user = await db.get(User, user_id)
        if user is None:
            raise ValidationError("Invalid or expired token")

        if not user.is_verified:
            user.is_verified = True
            logger.info("user_verified", user_id=str(user.id))
        return {"message": "Email verified successfully!"}

    async def login(self, email: str, password: str, db: AsyncSession) -> Dict[str, Any]:
        """
        Exchange credentials for an access/refresh token pair.

        Raises:
            AuthenticationError: On unknown email or wrong password
            PermissionDenied: If the account is unverified or suspended
        """
        user = await self.get_by_email(email, db)
        if user is None or not verify_password(password, user.password_hash):
            logger.info("login_failed", email=email)
            raise AuthenticationError("Invalid password/email")

        if not user.is_verified:
            raise PermissionDenied("Your account has not been verified.")
        if user.status == "suspended":
            raise PermissionDenied("Your account has been suspended.")

        logger.info("user_logged_in", user_id=str(user.id))
        return {
            "accessToken": create_access_token(user.id),
            "refreshToken": create_refresh_token(user.id),
            "user": user_to_dict(user),
        }

    async def refresh(self, refresh_token: Optional[str], db: AsyncSession) -> Dict[str, Any]:
        """
        Issue a new access token.

        Raises:
            AuthenticationError: If no token was supplied
            PermissionDenied: If the token is invalid or the user is suspended
            NotFoundError: If the user no longer exists
        """
        if not refresh_token:
            raise AuthenticationError("No token provided")
        try:
            user_id = token_user_id(decode_token(refresh_token, REFRESH))
        except AuthenticationError:
            raise PermissionDenied("Invalid refresh token")

        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        if user.status == "suspended":
            raise PermissionDenied("Your account has been suspended.")

        return {"accessToken": create_access_token(user.id), "user": user_to_dict(user)}

    async def forgot_password(self, email: str, db: AsyncSession) -> Dict[str, Any]:
        """Store a hashed reset token and email the raw one."""
        user = await self.get_by_email(email, db)
        if user is None:
            raise NotFoundError("User")
        if not user.is_verified:
            raise ValidationError("Please verify your email first.")

        raw, digest = generate_reset_token()
        user.reset_token_hash = digest
        user.reset_token_expires_at = utcnow() + timedelta(
            minutes=self.settings.password_reset_expire_minutes
        )

        link = f"{self.settings.client_url}/reset-password/{raw}"
        await self.email_sender.send_password_reset(user.email, link)

        logger.info("password_reset_requested", user_id=str(user.id))
        return {"message": "Reset link sent to email"}

    async def reset_password(
        self,
        token: str,
        password: str,
        confirm_password: str,
        db: AsyncSession,
    ) -> Dict[str, Any]:
        """
        Set a new password using an unexpired reset token.

        The token is single use.
        """
        result = await db.execute(
            select(User).where(
                User.reset_token_hash == hash_reset_token(token),
                User.reset_token_expires_at > utcnow(),
            )
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise ValidationError("Token is invalid or expired")

        check_new_password(password, confirm_password)

        user.password_hash = hash_password(password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None

        logger.info("password_reset_completed", user_id=str(user.id))
        return {"message": "Password has been reset successfully"}

    async def resend_verification(self, email: Optional[str], db: AsyncSession) -> Dict[str, Any]:
        if not email:
            raise ValidationError("Email is required")

        user = await self.get_by_email(email, db)
        if user is None:
            raise NotFoundError("User")
        if user.is_verified:
            raise ValidationError("This account has already been verified.")

        token = create_verification_token(user.id, email=user.email, hours=1)
        await self.email_sender.send_verification_reminder(
            user.email, user.first_name, self._verification_link(token)
        )
        return {"message": "Verification email resent successfully."}
