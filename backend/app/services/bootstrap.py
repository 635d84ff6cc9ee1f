# backend/app/services/bootstrap.py
"""First-run setup: make sure a super admin exists to create everyone else."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import hash_password
from app.config import settings
from app.models import User

logger = logging.getLogger(__name__)


async def ensure_bootstrap_admin(db: AsyncSession) -> Optional[User]:
    """Create the configured super admin if that email has no account yet."""
    if not settings.BOOTSTRAP_ADMIN_EMAIL or not settings.BOOTSTRAP_ADMIN_PASSWORD:
        return None

    email = settings.BOOTSTRAP_ADMIN_EMAIL.lower()
    result = await db.execute(select(User).where(User.email == email))
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    admin = User(
        email=email,
        password_hash=hash_password(settings.BOOTSTRAP_ADMIN_PASSWORD),
        employee_name=settings.BOOTSTRAP_ADMIN_NAME,
        employee_code="ADMIN-001",
        role="super_admin",
        is_active=True,
        email_verified=True,
    )
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    logger.info(f"Bootstrap super admin created: {email}")
    return admin
