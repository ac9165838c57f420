import io
from datetime import date

import pytest
from openpyxl import load_workbook

from src.core.errors import ApiError
from src.services.exporter import document_from_sections, export_report

SECTIONS = [
    {
        "section_order": 1,
        "section_type": "metrics_summary",
        "section_title": "Key Metrics Summary",
        "content": "5 of 10 users were active.",
        "tables_data": {
            "metrics_table": {
                "headers": ["Metric Type", "Metric Name", "Value"],
                "rows": [["user_engagement", "active_user_percentage", 50.0]],
            }
        },
    },
    {
        "section_order": 2,
        "section_type": "team_performance",
        "section_title": "Team <Performance>",
        "content": "Engineering: 3/4 completed",
        "tables_data": {},
    },
]


@pytest.fixture
def document():
    return document_from_sections(
        "Weekly Report - Acme", date(2024, 1, 8), date(2024, 1, 14), "A quiet week.", SECTIONS
    )


def test_csv_has_one_row_per_section(document):
    exported = export_report(document, "csv")
    assert exported.media_type == "text/csv"
    assert exported.filename == "weekly_report_acme.csv"
    lines = exported.content.decode("utf-8").strip().splitlines()
    assert lines[0] == "order,type,title,content"
    assert len(lines) == 3
    assert lines[1].startswith("1,metrics_summary,Key Metrics Summary")


def test_excel_workbook_sheets(document):
    exported = export_report(document, "excel")
    assert exported.filename.endswith(".xlsx")
    workbook = load_workbook(io.BytesIO(exported.content))
    assert workbook.sheetnames == ["Summary", "Sections", "metrics_table"]
    summary = workbook["Summary"]
    assert summary["B2"].value == "Weekly Report - Acme"
    assert workbook["metrics_table"]["B2"].value == "active_user_percentage"


def test_formula_like_text_is_quoted():
    sections = [
        {
            "section_order": 1,
            "section_type": "custom",
            "section_title": "=HYPERLINK(A1)",
            "content": "+1 more",
            "tables_data": {"notes": {"headers": ["Note", "Count"], "rows": [["@SUM(A1:A2)", 3]]}},
        }
    ]
    doc = document_from_sections("Report", date(2024, 1, 8), date(2024, 1, 14), "=1+1", sections)
    workbook = load_workbook(io.BytesIO(export_report(doc, "excel").content))
    assert workbook["Summary"]["B5"].value == "'=1+1"
    assert workbook["Sections"]["C2"].value == "'=HYPERLINK(A1)"
    assert workbook["Sections"]["D2"].value == "'+1 more"
    assert workbook["notes"]["A2"].value == "'@SUM(A1:A2)"
    assert workbook["notes"]["B2"].value == 3

    csv_lines = export_report(doc, "csv").content.decode("utf-8").splitlines()
    assert csv_lines[1].startswith("1,custom,'=HYPERLINK")


def test_xlsx_is_an_alias_for_excel(document):
    assert export_report(document, "xlsx").media_type == export_report(document, "excel").media_type


def test_pdf_document(document):
    exported = export_report(document, "pdf")
    assert exported.media_type == "application/pdf"
    assert exported.content.startswith(b"%PDF")


def test_html_escapes_titles(document):
    body = export_report(document, "html").content.decode("utf-8")
    assert "<h1>Weekly Report - Acme</h1>" in body
    assert "Team &lt;Performance&gt;" in body
    assert "<table" in body


def test_unsupported_format(document):
    with pytest.raises(ApiError) as exc:
        export_report(document, "docx")
    assert exc.value.status_code == 400
    assert exc.value.code == "VALIDATION_ERROR"
    assert "pdf" in exc.value.details["supported"]


def test_document_from_orm_like_sections():
    class Section:
        section_order = 3
        section_type = "custom"
        section_title = "Notes"
        content = None
        tables_data = {}

    doc = document_from_sections("Untitled", "2024-01-01", "2024-01-07", None, [Section()])
    assert doc.executive_summary == ""
    assert doc.sections[0]["section_title"] == "Notes"
