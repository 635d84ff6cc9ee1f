"""Authentication API endpoints."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from datetime import datetime
import logging

from app.database import get_db
from app.auth import (
    verify_password, hash_password, get_current_user,
    token_for_user, generate_code, code_expiry,
)
from app.models import User
from app.rbac import permissions_for
from app.schemas import (
    LoginRequest, TokenResponse, UserResponse, PermissionsResponse,
    VerificationRequest, VerifyCodeRequest,
    PasswordResetRequest, PasswordResetConfirm, MessageResponse,
)
from app.services.email_service import send_verification_email, send_password_reset_email
from app.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()

RESET_REQUESTED = "If an account exists for that email, a reset code has been sent"


async def _user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Authenticate user and return JWT token.

    - **email**: User email address
    - **password**: User password
    """
    user = await _user_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Login failed for: {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    if not user.is_active:
        logger.warning(f"Inactive user login attempt: {credentials.email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account has been deactivated. Please contact your administrator."
        )

    access_token = token_for_user(user)

    user.last_login = datetime.utcnow()
    await db.commit()
    await db.refresh(user)

    logger.info(f"User logged in: {user.email}")

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: User = Depends(get_current_user)):
    """Tokens are stateless; the client drops its copy."""
    logger.info(f"User logged out: {current_user.email}")
    return MessageResponse(message="Logged out successfully")


@router.post("/register", include_in_schema=False)
async def register():
    """Self-registration is disabled; accounts are created by administrators."""
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Registration is disabled. Contact your administrator for an account."
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current authenticated user information."""
    return UserResponse.model_validate(current_user)


@router.get("/me/permissions", response_model=PermissionsResponse)
async def get_my_permissions(
    current_user: User = Depends(get_current_user)
):
    """Permission tokens for the current user, used by clients to gate UI."""
    return PermissionsResponse(role=current_user.role, permissions=permissions_for(current_user))


# ============================================================================
# EMAIL VERIFICATION
# ============================================================================

@router.post("/send-verification", response_model=MessageResponse)
async def send_verification(
    request: VerificationRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    """Email a fresh 6-digit verification code."""
    user = await _user_by_email(db, request.email)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.email_verified:
        return MessageResponse(message="Email is already verified")

    code = generate_code()
    user.verification_code = code
    user.code_expires_at = code_expiry()
    await db.commit()

    background_tasks.add_task(send_verification_email, user.email, user.employee_name, code)
    logger.info(f"Verification code issued for {user.email}")
    return MessageResponse(message="Verification code sent")


@router.post("/verify-code", response_model=MessageResponse)
async def verify_code(
    request: VerifyCodeRequest,
    db: AsyncSession = Depends(get_db)
):
    user = await _user_by_email(db, request.email)
    if not user or not user.verification_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")

    if user.code_expires_at is None or user.code_expires_at < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Verification code has expired")

    if user.verification_code != request.code:
        logger.warning(f"Wrong verification code for {user.email}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid verification code")

    user.email_verified = True
    user.verification_code = None
    user.code_expires_at = None
    await db.commit()

    logger.info(f"Email verified: {user.email}")
    return MessageResponse(message="Email verified successfully")


# ============================================================================
# PASSWORD RESET
# ============================================================================

@router.post("/password-reset/request", response_model=MessageResponse)
async def request_password_reset(
    request: PasswordResetRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    """Email a reset code. The response is the same whether or not the account exists."""
    user = await _user_by_email(db, request.email)
    if user and user.is_active:
        code = generate_code()
        user.password_reset_code = code
        user.password_reset_expires_at = code_expiry()
        await db.commit()
        background_tasks.add_task(send_password_reset_email, user.email, user.employee_name, code)
        logger.info(f"Password reset code issued for {user.email}")
    else:
        logger.warning(f"Password reset requested for unknown or inactive account: {request.email}")

    return MessageResponse(message=RESET_REQUESTED)


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    request: PasswordResetConfirm,
    db: AsyncSession = Depends(get_db)
):
    user = await _user_by_email(db, request.email)
    if (
        not user
        or not user.password_reset_code
        or user.password_reset_code != request.code
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid reset code")

    if user.password_reset_expires_at is None or user.password_reset_expires_at < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Reset code has expired")

    user.password_hash = hash_password(request.new_password)
    user.password_reset_code = None
    user.password_reset_expires_at = None
    await db.commit()

    logger.info(f"Password reset completed for {user.email}")
    return MessageResponse(message="Password has been reset successfully")
