# tests/test_scheduler.py
"""
Target deadline reminders and first-run setup.

Run with: pytest backend/tests/test_scheduler.py -v
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from sqlalchemy import select

from app.config import settings
from app.models import Lead, Notification, Target, User
from app.scheduler import send_target_reminders
from app.services.bootstrap import ensure_bootstrap_admin


def target_for(user, ends_in_days, value=50000, **fields):
    now = datetime.utcnow()
    return Target(
        user_id=user.id, target_type="revenue", target_value=value, period="monthly",
        start_date=now - timedelta(days=20), end_date=now + timedelta(days=ends_in_days),
        created_by="admin-1", **fields,
    )


async def reminders(db):
    result = await db.execute(select(Notification).where(Notification.type == "target_reminder"))
    return result.scalars().all()


class TestTargetReminders:

    @pytest.mark.asyncio
    async def test_reminds_users_with_unmet_targets_ending_soon(self, db, users):
        db.add_all([
            target_for(users.agent, ends_in_days=2),
            target_for(users.outsider, ends_in_days=10),
        ])
        await db.commit()

        sent = await send_target_reminders(db)

        assert sent == 1
        notes = await reminders(db)
        assert [n.user_id for n in notes] == [users.agent.id]
        assert notes[0].title == "Target Deadline Approaching"
        assert "0% with ৳50,000 to go" in notes[0].message

    @pytest.mark.asyncio
    async def test_at_most_one_reminder_per_day(self, db, users):
        db.add(target_for(users.agent, ends_in_days=1))
        await db.commit()

        assert await send_target_reminders(db) == 1
        assert await send_target_reminders(db) == 0
        assert len(await reminders(db)) == 1

    @pytest.mark.asyncio
    async def test_met_targets_and_inactive_users_are_skipped(self, db, users):
        db.add_all([
            target_for(users.agent, ends_in_days=1, value=1000),
            target_for(users.inactive, ends_in_days=1),
            Lead(contact_name="Rahim", email="r@example.com", company="Rahim Traders", value=1500,
                 stage="closed_won", assigned_to=users.agent.id, created_by=users.manager.id),
        ])
        await db.commit()

        assert await send_target_reminders(db) == 0

    @pytest.mark.asyncio
    async def test_each_target_is_tracked_separately(self, db, users):
        db.add_all([
            target_for(users.agent, ends_in_days=1),
            target_for(users.agent, ends_in_days=2, value=80000),
        ])
        await db.commit()

        assert await send_target_reminders(db) == 2
        assert await send_target_reminders(db) == 0


class TestBootstrapAdmin:

    @pytest.mark.asyncio
    async def test_not_configured(self, db):
        with patch.object(settings, "BOOTSTRAP_ADMIN_EMAIL", None):
            assert await ensure_bootstrap_admin(db) is None

    @pytest.mark.asyncio
    async def test_creates_admin_once(self, db):
        with patch.object(settings, "BOOTSTRAP_ADMIN_EMAIL", "Root@Example.com"), \
                patch.object(settings, "BOOTSTRAP_ADMIN_PASSWORD", "rootpass1"):
            first = await ensure_bootstrap_admin(db)
            second = await ensure_bootstrap_admin(db)

        assert first.id == second.id
        assert first.email == "root@example.com"
        assert first.role == "super_admin"
        admins = (await db.execute(select(User).where(User.role == "super_admin"))).scalars().all()
        assert len(admins) == 1
