# tests/test_analytics.py
"""
Sales metric arithmetic and the team queries built on it.

Run with: pytest backend/tests/test_analytics.py -v
"""

import pytest
from datetime import date, datetime, timedelta
from types import SimpleNamespace

from app.models import DailyRevenue, Lead, Target, Interaction
from app.services import analytics


def lead(stage, value=0, updated_at=None, created_at=None):
    return SimpleNamespace(stage=stage, value=value, updated_at=updated_at, created_at=created_at)


def interaction(i, type_, lead_id, completed_at):
    return SimpleNamespace(
        id=i, lead_id=lead_id, user_id="agent-1", type=type_, description=None,
        completed_at=completed_at, created_at=completed_at,
    )


# ============================================================================
# TEST: Pure calculations
# ============================================================================

class TestConversionRate:

    def test_no_leads_is_zero(self):
        assert analytics.conversion_rate(0, 0) == 0.0

    def test_rounded_to_two_decimals(self):
        assert analytics.conversion_rate(3, 1) == 33.33
        assert analytics.conversion_rate(4, 4) == 100.0


class TestSummarizeLeads:

    def test_counts_by_stage_and_sums_revenue(self):
        leads = [
            lead("prospecting"),
            lead("negotiation"),
            lead("closed_won"),
            lead("closed_lost"),
        ]
        revenue = [SimpleNamespace(revenue=1500), SimpleNamespace(revenue=2500)]

        summary = analytics.summarize_leads(leads, revenue)

        assert summary == {
            "total_revenue": 4000,
            "active_leads": 2,
            "closed_won_leads": 1,
            "total_leads": 4,
            "conversion_rate": 25.0,
        }


class TestProgress:

    def test_partial(self):
        assert analytics.progress(50000, 20000) == (40.0, 30000)

    def test_over_achievement_is_capped(self):
        assert analytics.progress(1000, 2500) == (100.0, 0)

    def test_non_positive_target(self):
        assert analytics.progress(0, 100) == (0.0, 0)


class TestWonValueInWindow:

    def test_only_won_leads_inside_window(self):
        start = datetime(2024, 3, 1)
        end = datetime(2024, 3, 31, 23, 59)
        leads = [
            lead("closed_won", 100, updated_at=datetime(2024, 3, 5)),
            lead("closed_won", 200, updated_at=datetime(2024, 2, 28)),
            lead("closed_won", 400, updated_at=None, created_at=datetime(2024, 3, 20)),
            lead("negotiation", 800, updated_at=datetime(2024, 3, 10)),
        ]
        assert analytics.won_value_in_window(leads, start, end) == 500

    def test_open_ended_window(self):
        leads = [lead("closed_won", 100, updated_at=datetime(2020, 1, 1))]
        assert analytics.won_value_in_window(leads, None, None) == 100


class TestRevenueTargetLines:

    def test_both_targets(self):
        assert analytics.revenue_target_lines(30000, 45, 60000, 30) == [
            "Revenue: ৳30,000 / ৳60,000 (50%)",
            "Orders: 45 / 30 (150%)",
        ]

    def test_no_targets(self):
        assert analytics.revenue_target_lines(30000, 45) == []


class TestActivityStats:

    def test_counts_every_type_and_keeps_five_recent(self):
        base = datetime(2024, 3, 1, 9, 0)
        interactions = [
            interaction(i, t, lead_id, base + timedelta(hours=i))
            for i, (t, lead_id) in enumerate([
                ("call", 1), ("call", 1), ("email", 2), ("meeting", 1),
                ("call", 99), ("email", 2), ("call", 1),
            ])
        ]
        assigned = [lead("prospecting"), lead("closed_won")]

        stats = analytics.activity_stats(interactions, assigned, {1: "Rahim Uddin", 2: "Karim Ali"})

        assert stats["total_activities"] == 7
        assert stats["activities_by_type"] == {"call": 4, "email": 2, "meeting": 1, "note": 0}
        assert [a["id"] for a in stats["recent_activities"]] == [6, 5, 4, 3, 2]
        assert stats["recent_activities"][2]["lead_name"] == "Unknown Lead"
        assert stats["recent_activities"][0]["lead_name"] == "Rahim Uddin"
        assert stats["assigned_leads"] == 2
        assert stats["active_leads"] == 1


# ============================================================================
# TEST: Queries
# ============================================================================

class TestQueries:

    @pytest.mark.asyncio
    async def test_target_progress_uses_won_leads_in_window(self, db, users):
        now = datetime.utcnow()
        db.add_all([
            Lead(contact_name="Rahim", email="r@example.com", company="Rahim Traders", value=20000,
                 stage="closed_won", assigned_to=users.agent.id, created_by=users.manager.id,
                 created_at=now, updated_at=now),
            Lead(contact_name="Karim", email="k@example.com", company="Karim Co", value=90000,
                 stage="proposal", assigned_to=users.agent.id, created_by=users.manager.id),
        ])
        target = Target(user_id=users.agent.id, target_type="revenue", target_value=50000,
                        period="monthly", start_date=now - timedelta(days=10),
                        end_date=now + timedelta(days=10), created_by=users.admin.id)
        db.add(target)
        await db.commit()

        result = await analytics.target_progress(db, target)

        assert result == {"achieved": 20000, "percentage": 40.0, "remaining": 30000}

    @pytest.mark.asyncio
    async def test_team_performance_excludes_admins_and_respects_scope(self, db, users):
        db.add(Lead(contact_name="Rahim", email="r@example.com", company="Rahim Traders", value=5000,
                    stage="closed_won", assigned_to=users.agent.id, created_by=users.manager.id))
        db.add(Target(user_id=users.agent.id, target_type="revenue", target_value=10000,
                      period="monthly", created_by=users.admin.id))
        await db.commit()

        everyone = await analytics.team_performance(db)
        assert users.admin.id not in {row["user"]["id"] for row in everyone}

        team = await analytics.team_performance(db, {users.manager.id, users.agent.id})
        by_id = {row["user"]["id"]: row for row in team}
        assert set(by_id) == {users.manager.id, users.agent.id}
        assert by_id[users.agent.id]["deals_count"] == 1
        assert by_id[users.agent.id]["revenue"] == 5000
        assert by_id[users.agent.id]["target_progress"] == 50.0
        assert by_id[users.manager.id]["target_progress"] == 0.0

    @pytest.mark.asyncio
    async def test_user_activity_stats_resolves_lead_names(self, db, users):
        target_lead = Lead(contact_name="Rahim Uddin", email="r@example.com", company="Rahim Traders",
                           value=0, assigned_to=users.agent.id, created_by=users.agent.id)
        db.add(target_lead)
        await db.commit()
        db.add(Interaction(lead_id=target_lead.id, user_id=users.agent.id, type="call",
                           completed_at=datetime.utcnow()))
        await db.commit()

        stats = await analytics.user_activity_stats(db, users.agent.id)

        assert stats["activities_by_type"]["call"] == 1
        assert stats["recent_activities"][0]["lead_name"] == "Rahim Uddin"
        assert stats["assigned_leads"] == 1

    @pytest.mark.asyncio
    async def test_monthly_revenue_summary_counts_current_month_only(self, db, users):
        def entry(day, revenue, orders):
            return DailyRevenue(
                assigned_user=users.agent.id, merchant_code="MC1001", date=day,
                revenue=revenue, orders=orders, created_by=users.admin.id,
            )

        db.add_all([
            entry(datetime(2024, 3, 1), 10000, 4),
            entry(datetime(2024, 3, 31, 23), 5000, 2),
            entry(datetime(2024, 2, 29), 99999, 9),
            Target(user_id=users.agent.id, target_type="revenue", target_value=60000, period="monthly",
                   order_target=12, created_by=users.admin.id),
        ])
        await db.commit()

        summary = await analytics.monthly_revenue_summary(db, users.agent.id, today=date(2024, 3, 15))

        assert summary == {
            "total_revenue": 15000,
            "total_orders": 6,
            "average_per_order": 2500,
            "target_lines": ["Revenue: ৳15,000 / ৳60,000 (25%)", "Orders: 6 / 12 (50%)"],
        }
