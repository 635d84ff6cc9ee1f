# tests/test_bulk_upload_api.py
"""
CSV bulk uploads for leads, customers and daily revenue, plus templates.

Run with: pytest backend/tests/test_bulk_upload_api.py -v
"""

import pytest
from unittest.mock import patch

from sqlalchemy import select

from app.models import Customer, DailyRevenue, Lead, Notification

pytestmark = pytest.mark.integration


def csv_file(text, name="upload.csv"):
    return {"file": (name, text.encode("utf-8"), "text/csv")}


class TestLeadUpload:

    @pytest.mark.asyncio
    async def test_good_rows_survive_bad_rows(self, client, users, auth, session_factory):
        content = (
            "Contact Name,Email,Phone,Company,Deal Value,Stage\n"
            "Rahim Uddin,rahim@example.com,01712345678,Rahim Traders,50000,proposal\n"
            "Bad Row,not-an-email,01799999999,Bad Co,10,prospecting\n"
            "Karim Ali,karim@example.com,01712345678,Karim Co,100,prospecting\n"
            "Salma Begum,salma@example.com,,Salma Boutique,2500,\n"
        )

        response = await client.post("/api/v1/leads/bulk-upload", files=csv_file(content), headers=auth(users.manager))

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 2
        assert body["failed"] == 2
        assert body["errors"][0].startswith("Row 3: email")
        assert body["errors"][1] == "Row 4: A lead with phone number 01712345678 already exists"

        async with session_factory() as session:
            leads = (await session.execute(select(Lead).order_by(Lead.id))).scalars().all()
        assert [(l.contact_name, l.stage, l.assigned_to) for l in leads] == [
            ("Rahim Uddin", "proposal", users.manager.id),
            ("Salma Begum", "prospecting", users.manager.id),
        ]

    @pytest.mark.asyncio
    async def test_agents_cannot_upload_leads(self, client, users, auth):
        content = "contact_name,email,company,value\nRahim Uddin,rahim@example.com,Rahim Traders,1\n"
        response = await client.post("/api/v1/leads/bulk-upload", files=csv_file(content), headers=auth(users.agent))
        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,content,detail", [
        ("leads.xlsx", "contact_name\nx\n", "File must be a CSV file"),
        ("leads.csv", "", "File is empty"),
        ("leads.csv", "contact_name,email\n", "CSV file contains no data rows"),
    ])
    async def test_unusable_files_are_rejected(self, client, users, auth, name, content, detail):
        response = await client.post(
            "/api/v1/leads/bulk-upload", files=csv_file(content, name), headers=auth(users.admin)
        )
        assert response.status_code == 400
        assert response.json()["detail"] == detail


class TestCustomerUpload:

    @pytest.mark.asyncio
    async def test_agent_lookup_and_duplicate_codes(self, client, users, auth, session_factory):
        content = (
            "merchant_code,merchant_name,rate_chart,contact_person,phone_number,assigned_agent\n"
            "MC1001,Rahim Traders,ISD,Rahim Uddin,01712345678,agent@example.com\n"
            "MC1001,Duplicate Traders,ISD,Someone Else,01798765432,\n"
            "MC1002,Karim Fashion,OSD,Karim Ali,01811111111,EMP-404\n"
            "MC1003,Salma Boutique,Pheripheri,Salma Begum,01922222222,\n"
        )

        response = await client.post("/api/v1/customers/bulk-upload", files=csv_file(content), headers=auth(users.manager))

        body = response.json()
        assert body["processed"] == 2
        assert body["errors"] == [
            "Row 3: Merchant code MC1001 already exists",
            "Row 4: User EMP-404 not found",
        ]

        async with session_factory() as session:
            customers = (await session.execute(select(Customer).order_by(Customer.merchant_code))).scalars().all()
        assert [(c.merchant_code, c.assigned_agent) for c in customers] == [
            ("MC1001", users.agent.id),
            ("MC1003", users.manager.id),
        ]

    @pytest.mark.asyncio
    async def test_rows_cannot_assign_agents_outside_scope(self, client, users, auth, session_factory):
        content = (
            "merchant_code,merchant_name,rate_chart,contact_person,phone_number,assigned_agent\n"
            "MC9002,Rahim Traders,ISD,Rahim Uddin,01712345678,agent@example.com\n"
            "MC9003,Own Traders,ISD,Own Person,01712345679,outsider@example.com\n"
        )

        response = await client.post(
            "/api/v1/customers/bulk-upload", files=csv_file(content), headers=auth(users.outsider)
        )

        body = response.json()
        assert body["processed"] == 1
        assert body["errors"] == ["Row 2: You can't assign customers to agent@example.com"]

        async with session_factory() as session:
            customers = (await session.execute(select(Customer))).scalars().all()
        assert [(c.merchant_code, c.assigned_agent) for c in customers] == [("MC9003", users.outsider.id)]

    @pytest.mark.asyncio
    async def test_rate_chart_must_be_known(self, client, users, auth):
        content = (
            "merchant_code,merchant_name,rate_chart,contact_person,phone_number\n"
            "MC1001,Rahim Traders,Express,Rahim Uddin,01712345678\n"
        )

        response = await client.post("/api/v1/customers/bulk-upload", files=csv_file(content), headers=auth(users.agent))

        body = response.json()
        assert body["failed"] == 1
        assert body["errors"][0].startswith("Row 2: rate_chart")


class TestRevenueUpload:

    @pytest.mark.asyncio
    async def test_summary_and_notifications(self, client, users, auth, session_factory):
        content = (
            "assigned_user,merchant_code,date,revenue,orders,description\n"
            "agent@example.com,MC1001,2024-01-31,15000,12,January settlement\n"
            "EMP-004,MC1002,2024-01-31,5000,3,\n"
            "nobody@example.com,MC1003,2024-01-31,700,1,\n"
            "agent@example.com,MC1004,2024-01-31,0,1,\n"
            ",MC1005,2024-01-31,100,1,\n"
        )

        response = await client.post(
            "/api/v1/daily-revenue/bulk-upload", files=csv_file(content), headers=auth(users.admin)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 2
        assert body["failed"] == 3
        assert body["summary"] == {"total_revenue": 20000, "total_orders": 15, "affected_users": 2}
        assert body["errors"] == [
            "Row 4: User nobody@example.com not found",
            "Row 5: revenue must be greater than 0",
            "Row 6: Missing required fields (assigned_user, merchant_code, revenue)",
        ]

        async with session_factory() as session:
            entries = (await session.execute(select(DailyRevenue))).scalars().all()
            notes = (await session.execute(
                select(Notification).where(Notification.type == "revenue_added")
            )).scalars().all()
        assert {e.assigned_user for e in entries} == {users.agent.id, users.outsider.id}
        assert {n.user_id for n in notes} == {users.agent.id, users.outsider.id}

    @pytest.mark.asyncio
    async def test_earners_and_uploader_are_emailed(self, client, users, auth):
        content = (
            "assigned_user,merchant_code,revenue,orders\n"
            "agent@example.com,MC1001,15000,12\n"
            "nobody@example.com,MC1002,700,1\n"
        )

        with patch("app.services.email_service.send_email", return_value=True) as send_email:
            response = await client.post(
                "/api/v1/daily-revenue/bulk-upload", files=csv_file(content), headers=auth(users.admin)
            )

        assert response.status_code == 200
        sent = [(c.args[0], c.args[1]) for c in send_email.call_args_list]
        assert sent == [
            ("agent@example.com", "Daily Revenue Summary - ৳15,000"),
            ("admin@example.com", "Bulk Revenue Upload Summary - 1 entries processed"),
        ]
        earner_body = send_email.call_args_list[0].args[2]
        assert "Average revenue per order: ৳1,250" in earner_body
        admin_body = send_email.call_args_list[1].args[2]
        assert "Failed: 1" in admin_body
        assert "- Row 3: User nobody@example.com not found" in admin_body

    @pytest.mark.asyncio
    async def test_no_summary_email_when_nothing_was_recorded(self, client, users, auth):
        content = "assigned_user,merchant_code,revenue\nnobody@example.com,MC1001,100\n"

        with patch("app.services.email_service.send_email", return_value=True) as send_email:
            await client.post("/api/v1/daily-revenue/bulk-upload", files=csv_file(content), headers=auth(users.admin))

        send_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_single_entry_emails_earner(self, client, users, auth):
        with patch("app.services.email_service.send_email", return_value=True) as send_email:
            response = await client.post(
                "/api/v1/daily-revenue",
                json={"assigned_user": users.agent.id, "merchant_code": "MC1001", "revenue": 4000, "orders": 2},
                headers=auth(users.manager),
            )

        assert response.status_code == 201
        to_address, subject, body = send_email.call_args.args
        assert to_address == "agent@example.com"
        assert subject == "Daily Revenue Summary - ৳4,000"
        assert "updated by Mina Manager" in body

    @pytest.mark.asyncio
    async def test_admin_only(self, client, users, auth):
        content = "assigned_user,merchant_code,revenue\nagent@example.com,MC1001,100\n"
        response = await client.post(
            "/api/v1/daily-revenue/bulk-upload", files=csv_file(content), headers=auth(users.manager)
        )
        assert response.status_code == 403


class TestTemplates:

    @pytest.mark.asyncio
    async def test_download_template(self, client, users, auth):
        response = await client.get("/api/v1/import-templates/revenue", headers=auth(users.agent))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "revenue_template.csv" in response.headers["content-disposition"]
        assert response.text.startswith("assigned_user,merchant_code,date,revenue,orders,description")

    @pytest.mark.asyncio
    async def test_unknown_template(self, client, users, auth):
        response = await client.get("/api/v1/import-templates/invoices", headers=auth(users.agent))
        assert response.status_code == 422
