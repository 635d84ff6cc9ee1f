# tests/test_csv_import.py
"""
CSV parsing, header mapping, row validation and import reporting.

Run with: pytest backend/tests/test_csv_import.py -v
"""

import pytest

from app.errors import BusinessRuleError
from app.schemas.customer import DailyRevenueCreate
from app.schemas.lead import LeadCreate
from app.services.csv_import import (
    LEAD_ALIASES,
    REVENUE_ALIASES,
    ImportReport,
    build_header_map,
    map_row,
    parse_csv_file,
    template_csv,
    validate_row,
)


# ============================================================================
# TEST: Parsing
# ============================================================================

class TestParsing:

    def test_strips_bom_and_header_whitespace(self):
        content = "\ufeffcontact_name , email\nRahim Uddin,rahim@example.com\n".encode("utf-8")
        headers, rows = parse_csv_file(content)
        assert headers == ["contact_name", "email"]
        assert rows == [{"contact_name": "Rahim Uddin", "email": "rahim@example.com"}]

    def test_falls_back_to_latin1(self):
        content = "company\nCaf\xe9 Dhaka\n".encode("latin-1")
        headers, rows = parse_csv_file(content)
        assert rows[0]["company"] == "Caf\xe9 Dhaka"

    def test_header_only_file_has_no_rows(self):
        headers, rows = parse_csv_file(b"contact_name,email\n")
        assert headers == ["contact_name", "email"]
        assert rows == []


# ============================================================================
# TEST: Header mapping
# ============================================================================

class TestHeaderMapping:

    def test_aliases_fold_case_and_punctuation(self):
        header_map = build_header_map(
            ["Contact Name", "E-mail", "Phone_Number", "Deal Value", "leadSource", "Unrelated"],
            LEAD_ALIASES,
        )
        assert header_map == {
            "Contact Name": "contact_name",
            "E-mail": "email",
            "Phone_Number": "phone",
            "Deal Value": "value",
            "leadSource": "lead_source",
        }

    def test_first_matching_header_wins(self):
        header_map = build_header_map(["revenue", "amount"], REVENUE_ALIASES)
        assert header_map == {"revenue": "revenue"}

    def test_map_row_drops_blank_cells(self):
        header_map = {"Name": "contact_name", "Phone": "phone", "Notes": "notes"}
        row = {"Name": "  Rahim  ", "Phone": "   ", "Notes": ""}
        assert map_row(row, header_map) == {"contact_name": "Rahim"}


# ============================================================================
# TEST: Row validation
# ============================================================================

class TestRowValidation:

    def test_valid_lead_row_gets_defaults(self):
        data, error = validate_row(LeadCreate, {
            "contact_name": "Rahim Uddin",
            "email": "rahim@example.com",
            "company": "Rahim Traders",
            "value": "50000",
        })
        assert error is None
        assert data.value == 50000
        assert data.stage == "prospecting"
        assert data.lead_source == "Others"

    def test_invalid_lead_row_reports_fields(self):
        data, error = validate_row(LeadCreate, {
            "contact_name": "Rahim Uddin",
            "email": "not-an-email",
            "company": "Rahim Traders",
            "value": "-5",
        })
        assert data is None
        assert "email:" in error
        assert "value:" in error

    def test_custom_validator_message_has_no_prefix(self):
        _, error = validate_row(LeadCreate, {
            "contact_name": "Rahim Uddin",
            "email": "rahim@example.com",
            "company": "Rahim Traders",
            "value": "10",
            "website": "not a url",
        })
        assert error == "website: Please enter a valid URL"

    def test_revenue_orders_must_be_positive(self):
        _, error = validate_row(DailyRevenueCreate, {
            "merchant_code": "MC0001", "revenue": "100", "orders": "0",
        })
        assert error.startswith("orders:")


# ============================================================================
# TEST: Reporting
# ============================================================================

class TestImportReport:

    def test_counts_and_row_numbers(self):
        report = ImportReport()
        report.ok()
        report.fail(3, "email: invalid")
        assert report.to_dict() == {
            "success": True,
            "processed": 1,
            "failed": 1,
            "errors": ["Row 3: email: invalid"],
        }

    def test_error_messages_are_capped(self):
        report = ImportReport(max_errors=2)
        for row_number in range(2, 7):
            report.fail(row_number, "bad")

        result = report.to_dict()
        assert result["failed"] == 5
        assert result["errors"] == ["Row 2: bad", "Row 3: bad", "... and 3 more errors"]


class TestTemplates:

    @pytest.mark.parametrize("entity,first_header", [
        ("leads", "contact_name"),
        ("customers", "merchant_code"),
        ("revenue", "assigned_user"),
    ])
    def test_template_has_header_and_example(self, entity, first_header):
        lines = template_csv(entity).strip().splitlines()
        assert len(lines) == 2
        assert lines[0].split(",")[0] == first_header

    def test_unknown_template(self):
        with pytest.raises(BusinessRuleError):
            template_csv("invoices")
