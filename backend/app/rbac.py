"""Role-based access control (RBAC) system."""

from enum import Enum
from typing import Iterable, List, Optional, Set
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from app.auth import get_current_user
from app.models import User, Lead

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """User roles with hierarchical permissions."""
    SUPER_ADMIN = "super_admin"
    SALES_MANAGER = "sales_manager"
    SALES_AGENT = "sales_agent"


class Permission(str, Enum):
    """Granular permissions for different actions."""
    # Targets
    TARGET_CREATE = "target:create"
    TARGET_ASSIGN = "target:assign"
    TARGET_EDIT = "target:edit"
    TARGET_VIEW = "target:view"
    TARGET_TRACK = "target:track"
    TARGET_DELETE = "target:delete"

    # Leads
    LEAD_CREATE = "lead:create"
    LEAD_ASSIGN = "lead:assign"
    LEAD_EDIT = "lead:edit"
    LEAD_VIEW = "lead:view"
    LEAD_DELETE = "lead:delete"
    LEAD_IMPORT = "lead:import"
    LEAD_EXPORT = "lead:export"

    # Pipeline
    PIPELINE_CONFIG = "pipeline:config"
    PIPELINE_VIEW = "pipeline:view"
    PIPELINE_EDIT = "pipeline:edit"

    # Activities
    ACTIVITY_CREATE = "activity:create"
    ACTIVITY_VIEW = "activity:view"
    ACTIVITY_EDIT = "activity:edit"

    # Analytics
    ANALYTICS_GLOBAL = "analytics:global"
    ANALYTICS_TEAM = "analytics:team"
    ANALYTICS_PERSONAL = "analytics:personal"

    # Calendar
    CALENDAR_CREATE = "calendar:create"
    CALENDAR_ASSIGN = "calendar:assign"
    CALENDAR_VIEW = "calendar:view"
    CALENDAR_EDIT = "calendar:edit"
    CALENDAR_SYNC = "calendar:sync"

    # User management
    USER_CREATE = "user:create"
    USER_EDIT = "user:edit"
    USER_VIEW = "user:view"
    USER_ASSIGN_ROLE = "user:assign_role"
    USER_DEACTIVATE = "user:deactivate"
    USER_VIEW_TEAM = "user:view_team"
    USER_EDIT_SELF = "user:edit_self"


# Role to permissions mapping
ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN: frozenset(Permission),
    UserRole.SALES_MANAGER: frozenset([
        Permission.TARGET_CREATE,
        Permission.TARGET_ASSIGN,
        Permission.TARGET_EDIT,
        Permission.TARGET_VIEW,
        Permission.TARGET_TRACK,
        Permission.LEAD_CREATE,
        Permission.LEAD_ASSIGN,
        Permission.LEAD_EDIT,
        Permission.LEAD_VIEW,
        Permission.LEAD_DELETE,
        Permission.PIPELINE_VIEW,
        Permission.PIPELINE_EDIT,
        Permission.ACTIVITY_CREATE,
        Permission.ACTIVITY_VIEW,
        Permission.ACTIVITY_EDIT,
        Permission.ANALYTICS_TEAM,
        Permission.ANALYTICS_PERSONAL,
        Permission.CALENDAR_CREATE,
        Permission.CALENDAR_ASSIGN,
        Permission.CALENDAR_VIEW,
        Permission.CALENDAR_EDIT,
        Permission.USER_VIEW_TEAM,
        Permission.USER_EDIT_SELF,
    ]),
    UserRole.SALES_AGENT: frozenset([
        Permission.TARGET_VIEW,
        Permission.TARGET_TRACK,
        Permission.LEAD_EDIT,
        Permission.LEAD_VIEW,
        Permission.PIPELINE_VIEW,
        Permission.ACTIVITY_CREATE,
        Permission.ACTIVITY_VIEW,
        Permission.ACTIVITY_EDIT,
        Permission.ANALYTICS_PERSONAL,
        Permission.CALENDAR_CREATE,
        Permission.CALENDAR_VIEW,
        Permission.CALENDAR_EDIT,
        Permission.USER_EDIT_SELF,
    ]),
}


def _role_permissions(user: Optional[User]) -> frozenset:
    if user is None:
        return frozenset()
    try:
        role = UserRole(user.role)
    except ValueError:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(user: Optional[User], permission) -> bool:
    """Check if user has a specific permission. No user means no permissions."""
    try:
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in _role_permissions(user)


def has_any_permission(user: Optional[User], permissions: Iterable) -> bool:
    return any(has_permission(user, p) for p in permissions)


def has_all_permissions(user: Optional[User], permissions: Iterable) -> bool:
    permissions = list(permissions)
    return bool(permissions) and all(has_permission(user, p) for p in permissions)


def permissions_for(user: Optional[User]) -> List[str]:
    return sorted(p.value for p in _role_permissions(user))


def can_manage_users(user: Optional[User]) -> bool:
    return has_any_permission(user, [Permission.USER_ASSIGN_ROLE, Permission.USER_DEACTIVATE])


def can_create_leads(user: Optional[User]) -> bool:
    return has_permission(user, Permission.LEAD_CREATE)


def can_view_analytics(user: Optional[User]) -> bool:
    return has_any_permission(user, [
        Permission.ANALYTICS_GLOBAL,
        Permission.ANALYTICS_TEAM,
        Permission.ANALYTICS_PERSONAL,
    ])


def can_manage_targets(user: Optional[User]) -> bool:
    return has_any_permission(user, [Permission.TARGET_CREATE, Permission.TARGET_ASSIGN])


def is_super_admin(user: Optional[User]) -> bool:
    return user is not None and user.role == UserRole.SUPER_ADMIN.value


def check_permission(user: User, permission: Permission):
    """Raise exception if user doesn't have permission."""
    if not has_permission(user, permission):
        logger.warning(
            f"Permission denied: {user.email} (role: {user.role}) "
            f"attempted {permission.value}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied. Required permission: {permission.value}"
        )


# Dependency factories for common permission checks
def require_permission(permission: Permission):
    """Dependency factory to require a specific permission."""
    async def permission_checker(current_user: User = Depends(get_current_user)):
        check_permission(current_user, permission)
        return current_user
    return permission_checker


def require_role(*roles: UserRole):
    """Dependency factory to require one of the given roles."""
    allowed = {UserRole(r).value for r in roles}

    async def role_checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in allowed:
            logger.warning(
                f"Role access denied for user: {current_user.email} "
                f"(role: {current_user.role})"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user
    return role_checker


require_super_admin = require_role(UserRole.SUPER_ADMIN)
require_manager_or_admin = require_role(UserRole.SUPER_ADMIN, UserRole.SALES_MANAGER)


# ============================================================================
# DATA SCOPE
# ============================================================================

async def team_member_ids(db: AsyncSession, manager_id: str) -> List[str]:
    """Ids of users whose manager is manager_id."""
    result = await db.execute(select(User.id).where(User.manager_id == manager_id))
    return list(result.scalars().all())


async def accessible_user_ids(db: AsyncSession, user: User) -> Optional[Set[str]]:
    """
    Users whose data the caller may read.

    Returns None for a super admin (no restriction), the caller plus their
    direct reports for a sales manager, and only the caller for an agent.
    """
    if is_super_admin(user):
        return None
    if user.role == UserRole.SALES_MANAGER.value:
        return {user.id, *await team_member_ids(db, user.id)}
    return {user.id}


async def can_access_user(db: AsyncSession, user: User, target_user_id: str) -> bool:
    scope = await accessible_user_ids(db, user)
    return scope is None or target_user_id in scope


async def can_access_lead(db: AsyncSession, user: User, lead: Lead) -> bool:
    """Agents reach leads assigned to them; managers reach leads assigned to or created by their team."""
    if is_super_admin(user):
        return True
    if user.role == UserRole.SALES_MANAGER.value:
        scope = await accessible_user_ids(db, user)
        return lead.assigned_to in scope or lead.created_by in scope
    return lead.assigned_to == user.id


def lead_scope_filter(user: User, scope: Optional[Set[str]]):
    """SQL condition matching the leads a user may see, or None for everything."""
    if scope is None:
        return None
    if user.role == UserRole.SALES_MANAGER.value:
        return Lead.assigned_to.in_(scope) | Lead.created_by.in_(scope)
    return Lead.assigned_to == user.id
