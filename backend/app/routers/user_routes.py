"""User management routes."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from typing import List
import logging

from app.database import get_db
from app.auth import get_current_user, hash_password
from app.models import User
from app.rbac import (
    Permission, UserRole, has_permission, is_super_admin,
    require_super_admin, require_manager_or_admin, can_access_user,
)
from app.schemas import (
    UserCreate, UserResponse, UserRoleUpdate, UserStatusUpdate,
    UserDetailsUpdate, AssignmentUser, AdminPasswordReset, MessageResponse,
)
from app.services.lead_service import assignment_candidates

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["Users"])


async def _get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("", response_model=List[UserResponse])
async def list_users(
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List every user account.

    **Required Permission:** super admin
    """
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(require_manager_or_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a user account.

    Super admins may create any role. Sales managers may only create agents,
    who are placed on the manager's team.

    **Required Permission:** super admin or sales manager
    """
    manager_id = user_data.manager_id
    if current_user.role == UserRole.SALES_MANAGER.value:
        if user_data.role != UserRole.SALES_AGENT.value:
            logger.warning(f"Manager {current_user.email} tried to create a {user_data.role}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Sales managers can only create sales agents"
            )
        manager_id = current_user.id

    email = user_data.email.lower()
    existing = await db.execute(
        select(User).where(or_(User.email == email, User.employee_code == user_data.employee_code))
    )
    if existing.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A user with this email or employee code already exists"
        )

    if manager_id:
        manager = await db.get(User, manager_id)
        if not manager or manager.role != UserRole.SALES_MANAGER.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Manager must be an existing sales manager"
            )

    user = User(
        email=email,
        password_hash=hash_password(user_data.password),
        employee_name=user_data.employee_name,
        employee_code=user_data.employee_code,
        role=user_data.role,
        manager_id=manager_id,
        team_name=user_data.team_name,
        is_active=True,
    )
    db.add(user)

    try:
        await db.commit()
        await db.refresh(user)
    except Exception as e:
        await db.rollback()
        logger.error(f"User creation failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user"
        )

    logger.info(f"User created: {user.email} ({user.role}) by {current_user.email}")
    return UserResponse.model_validate(user)


@router.get("/team", response_model=List[UserResponse])
async def list_team_members(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Members of the caller's team.

    **Required Permission:** user:view_team
    """
    if not has_permission(current_user, Permission.USER_VIEW_TEAM):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    query = select(User).order_by(User.employee_name)
    if not is_super_admin(current_user):
        query = query.where(User.manager_id == current_user.id)
    result = await db.execute(query)
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


@router.get("/assignment-list", response_model=List[AssignmentUser])
async def get_assignment_list(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Users the caller may assign leads to, with the caller first as "Myself"."""
    candidates = await assignment_candidates(db, current_user)
    return [
        AssignmentUser(
            id=u.id,
            employee_name="Myself" if u.id == current_user.id else u.employee_name,
            email=u.email,
            role=u.role,
            is_self=u.id == current_user.id,
        )
        for u in candidates
    ]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not await can_access_user(db, current_user, user_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return UserResponse.model_validate(await _get_user_or_404(db, user_id))


@router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: str,
    update: UserRoleUpdate,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Change a user's role and manager.

    **Required Permission:** super admin
    """
    user = await _get_user_or_404(db, user_id)

    if update.manager_id:
        if update.manager_id == user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A user cannot manage themselves")
        manager = await db.get(User, update.manager_id)
        if not manager or manager.role != UserRole.SALES_MANAGER.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Manager must be an existing sales manager"
            )

    user.role = update.role
    user.manager_id = update.manager_id
    await db.commit()
    await db.refresh(user)

    logger.info(f"Role of {user.email} set to {user.role} by {current_user.email}")
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/details", response_model=UserResponse)
async def update_user_details(
    user_id: str,
    update: UserDetailsUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit name, email or team.

    **Required Permission:** user:edit (anyone) or user:edit_self (own profile)
    """
    editing_self = user_id == current_user.id
    if not (
        has_permission(current_user, Permission.USER_EDIT)
        or (editing_self and has_permission(current_user, Permission.USER_EDIT_SELF))
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

    user = await _get_user_or_404(db, user_id)
    changes = update.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in changes:
        changes["email"] = changes["email"].lower()
        clash = await db.execute(select(User.id).where(User.email == changes["email"], User.id != user.id))
        if clash.first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already in use")
        if changes["email"] != user.email:
            user.email_verified = False

    for field, value in changes.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    logger.info(f"Details of {user.email} updated by {current_user.email}: {sorted(changes)}")
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: str,
    update: UserStatusUpdate,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Activate or deactivate an account. Deactivated users are rejected on their next request.

    **Required Permission:** super admin
    """
    if user_id == current_user.id and not update.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate your own account")

    user = await _get_user_or_404(db, user_id)
    user.is_active = update.is_active
    await db.commit()
    await db.refresh(user)

    logger.info(f"User {user.email} {'activated' if user.is_active else 'deactivated'} by {current_user.email}")
    return UserResponse.model_validate(user)


@router.post("/{user_id}/reset-password", response_model=MessageResponse)
async def admin_reset_password(
    user_id: str,
    request: AdminPasswordReset,
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Set a new password for a user.

    **Required Permission:** super admin
    """
    user = await _get_user_or_404(db, user_id)
    user.password_hash = hash_password(request.new_password)
    user.password_reset_code = None
    user.password_reset_expires_at = None
    await db.commit()

    logger.info(f"Password of {user.email} reset by {current_user.email}")
    return MessageResponse(message=f"Password reset for {user.employee_name}")
