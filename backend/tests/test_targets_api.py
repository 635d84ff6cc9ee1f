# tests/test_targets_api.py
"""
Target assignment, progress tracking and analytics endpoints.

Run with: pytest backend/tests/test_targets_api.py -v
"""

import pytest
from datetime import datetime, timedelta
from sqlalchemy import select

from app.models import Lead, Notification

pytestmark = pytest.mark.integration

TARGETS = "/api/v1/targets"
ANALYTICS = "/api/v1/analytics"


def target_payload(**overrides):
    now = datetime.utcnow()
    payload = {
        "target_type": "revenue",
        "target_value": 50000,
        "period": "monthly",
        "start_date": (now - timedelta(days=5)).isoformat(),
        "end_date": (now + timedelta(days=25)).isoformat(),
    }
    payload.update(overrides)
    return payload


class TestTargets:

    @pytest.mark.asyncio
    async def test_admin_assigns_target_and_user_is_notified(self, client, users, auth, session_factory):
        response = await client.post(TARGETS, json=target_payload(user_id=users.agent.id), headers=auth(users.admin))

        assert response.status_code == 201
        assert response.json()["user_id"] == users.agent.id
        assert response.json()["created_by"] == users.admin.id

        async with session_factory() as session:
            note = (await session.execute(
                select(Notification).where(Notification.user_id == users.agent.id)
            )).scalar_one()
        assert note.type == "target_assigned"
        assert note.title == "New Target Assigned"
        assert note.message == "You have been assigned a new monthly target of ৳50,000"

    @pytest.mark.asyncio
    async def test_self_assigned_target_sends_nothing(self, client, users, auth, session_factory):
        response = await client.post(TARGETS, json=target_payload(), headers=auth(users.admin))

        assert response.status_code == 201
        assert response.json()["user_id"] == users.admin.id
        async with session_factory() as session:
            assert (await session.execute(select(Notification))).all() == []

    @pytest.mark.asyncio
    async def test_only_admin_creates_targets(self, client, users, auth):
        response = await client.post(TARGETS, json=target_payload(user_id=users.agent.id), headers=auth(users.manager))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected(self, client, users, auth):
        now = datetime.utcnow()
        response = await client.post(TARGETS, json=target_payload(
            start_date=now.isoformat(), end_date=(now - timedelta(days=1)).isoformat(),
        ), headers=auth(users.admin))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_progress_counts_won_leads(self, client, users, auth, db):
        created = await client.post(TARGETS, json=target_payload(user_id=users.agent.id), headers=auth(users.admin))
        target_id = created.json()["id"]

        db.add(Lead(contact_name="Rahim", email="r@example.com", company="Rahim Traders", value=20000,
                    stage="closed_won", assigned_to=users.agent.id, created_by=users.manager.id))
        await db.commit()

        response = await client.get(f"{TARGETS}/{target_id}/progress", headers=auth(users.agent))

        assert response.status_code == 200
        body = response.json()
        assert body["achieved"] == 20000
        assert body["percentage"] == 40.0
        assert body["remaining"] == 30000

        listed = await client.get(f"{TARGETS}/progress", headers=auth(users.agent))
        assert [t["id"] for t in listed.json()] == [target_id]

    @pytest.mark.asyncio
    async def test_target_list_is_scoped(self, client, users, auth):
        await client.post(TARGETS, json=target_payload(user_id=users.agent.id), headers=auth(users.admin))
        await client.post(TARGETS, json=target_payload(user_id=users.outsider.id), headers=auth(users.admin))

        agent_view = await client.get(TARGETS, headers=auth(users.agent))
        manager_view = await client.get(TARGETS, headers=auth(users.manager))
        forbidden = await client.get(TARGETS, params={"user_id": users.outsider.id}, headers=auth(users.manager))

        assert [t["user_id"] for t in agent_view.json()] == [users.agent.id]
        assert [t["user_id"] for t in manager_view.json()] == [users.agent.id]
        assert forbidden.status_code == 403


class TestAnalyticsEndpoints:

    @pytest.mark.asyncio
    async def test_sales_metrics_default_to_own_figures(self, client, users, auth, db):
        db.add_all([
            Lead(contact_name="Mine", email="m@example.com", company="Mine Co", value=100,
                 stage="closed_won", assigned_to=users.agent.id, created_by=users.manager.id),
            Lead(contact_name="Open", email="o@example.com", company="Open Co", value=100,
                 stage="proposal", assigned_to=users.agent.id, created_by=users.manager.id),
            Lead(contact_name="Other", email="x@example.com", company="Other Co", value=100,
                 stage="closed_won", assigned_to=users.outsider.id, created_by=users.admin.id),
        ])
        await db.commit()

        agent = (await client.get(f"{ANALYTICS}/sales-metrics", headers=auth(users.agent))).json()
        company = (await client.get(f"{ANALYTICS}/sales-metrics", headers=auth(users.admin))).json()

        assert agent["total_leads"] == 2
        assert agent["closed_won_leads"] == 1
        assert agent["conversion_rate"] == 50.0
        assert company["total_leads"] == 3

        response = await client.get(
            f"{ANALYTICS}/sales-metrics", params={"user_id": users.outsider.id}, headers=auth(users.agent)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_team_performance_requires_team_analytics(self, client, users, auth):
        assert (await client.get(f"{ANALYTICS}/team-performance", headers=auth(users.agent))).status_code == 403

        response = await client.get(f"{ANALYTICS}/team-performance", headers=auth(users.manager))
        assert response.status_code == 200
        ids = {row["user"]["id"] for row in response.json()}
        assert ids == {users.manager.id, users.agent.id, users.inactive.id}

    @pytest.mark.asyncio
    async def test_pipeline_lists_every_stage(self, client, users, auth, db):
        db.add(Lead(contact_name="Open", email="o@example.com", company="Open Co", value=700,
                    stage="proposal", assigned_to=users.agent.id, created_by=users.manager.id))
        await db.commit()

        response = await client.get(f"{ANALYTICS}/pipeline", headers=auth(users.agent))

        stages = {row["stage"]: row for row in response.json()}
        assert list(stages) == [
            "prospecting", "qualification", "proposal", "negotiation", "closed_won", "closed_lost",
        ]
        assert stages["proposal"] == {"stage": "proposal", "count": 1, "value": 700}
        assert stages["closed_won"]["count"] == 0
