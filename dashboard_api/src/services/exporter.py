from __future__ import annotations

import html
import io
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

import pandas as pd

from src.core.errors import ErrorResponses

EXPORT_FORMATS = ("pdf", "excel", "xlsx", "csv", "html")


@dataclass
class ExportedFile:
    content: bytes
    media_type: str
    filename: str


@dataclass
class ReportDocument:
    """Flattened report content handed to the renderers."""
    title: str
    period_start: str
    period_end: str
    executive_summary: str
    sections: List[Dict[str, Any]]


FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _literal(value: Any) -> Any:
    """Quote text a spreadsheet would evaluate as a formula."""
    if isinstance(value, str) and value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def _literal_frame(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.copy()
    for position in range(frame.shape[1]):
        column = frame.iloc[:, position]
        if pd.api.types.is_object_dtype(column) or pd.api.types.is_string_dtype(column):
            frame.iloc[:, position] = column.map(_literal)
    return frame


def _filename_base(title: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "_", title).strip("_").lower()
    return slug or "report"


def _sections_frame(doc: ReportDocument) -> pd.DataFrame:
    rows = [
        {
            "order": s.get("section_order", idx + 1),
            "type": s.get("section_type"),
            "title": s.get("section_title"),
            "content": s.get("content") or "",
        }
        for idx, s in enumerate(doc.sections)
    ]
    return pd.DataFrame(rows, columns=["order", "type", "title", "content"])


def _section_tables(section: Dict[str, Any]) -> List[tuple[str, pd.DataFrame]]:
    """tables_data entries shaped {headers: [...], rows: [[...]]} as DataFrames."""
    tables = []
    for name, table in (section.get("tables_data") or {}).items():
        if not isinstance(table, dict) or not table.get("headers"):
            continue
        tables.append((name, pd.DataFrame(table.get("rows") or [], columns=table["headers"])))
    return tables


def _to_csv(doc: ReportDocument, base: str) -> ExportedFile:
    buffer = io.StringIO()
    _literal_frame(_sections_frame(doc)).to_csv(buffer, index=False)
    return ExportedFile(buffer.getvalue().encode("utf-8"), "text/csv", f"{base}.csv")


def _to_xlsx(doc: ReportDocument, base: str) -> ExportedFile:
    # Use openpyxl engine
    buffer = io.BytesIO()
    summary = pd.DataFrame(
        [
            ["Title", doc.title],
            ["Period start", doc.period_start],
            ["Period end", doc.period_end],
            ["Executive summary", doc.executive_summary],
        ],
        columns=["Field", "Value"],
    )
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _literal_frame(summary).to_excel(writer, index=False, sheet_name="Summary")
        _literal_frame(_sections_frame(doc)).to_excel(writer, index=False, sheet_name="Sections")
        used = {"Summary", "Sections"}
        for section in doc.sections:
            for name, frame in _section_tables(section):
                sheet = name[:31]
                suffix = 1
                while sheet in used:
                    suffix += 1
                    sheet = f"{name[:28]}_{suffix}"
                used.add(sheet)
                _literal_frame(frame).to_excel(writer, index=False, sheet_name=sheet)
    return ExportedFile(
        buffer.getvalue(),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        f"{base}.xlsx",
    )


def _to_pdf(doc: ReportDocument, base: str) -> ExportedFile:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    buffer = io.BytesIO()
    pdf = SimpleDocTemplate(buffer, pagesize=letter, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36)
    styles = getSampleStyleSheet()
    elements: list = [
        Paragraph(html.escape(doc.title), styles["Title"]),
        Paragraph(f"Period: {doc.period_start} to {doc.period_end}", styles["Normal"]),
        Spacer(1, 12),
        Paragraph("Executive Summary", styles["Heading2"]),
        Paragraph(html.escape(doc.executive_summary or "-"), styles["BodyText"]),
    ]
    table_style = TableStyle(
        [
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ]
    )
    for section in doc.sections:
        elements.append(Spacer(1, 12))
        elements.append(Paragraph(html.escape(section.get("section_title") or ""), styles["Heading2"]))
        for paragraph in (section.get("content") or "").split("\n\n"):
            if paragraph.strip():
                text = html.escape(paragraph.strip()).replace("\n", "<br/>")
                elements.append(Paragraph(text, styles["BodyText"]))
        for _, frame in _section_tables(section):
            data = [list(frame.columns)] + frame.astype(str).values.tolist()
            table = Table(data, repeatRows=1)
            table.setStyle(table_style)
            elements.append(Spacer(1, 6))
            elements.append(table)
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"Generated {generated}", styles["Italic"]))
    pdf.build(elements)
    return ExportedFile(buffer.getvalue(), "application/pdf", f"{base}.pdf")


def _to_html(doc: ReportDocument, base: str) -> ExportedFile:
    parts = [
        "<!DOCTYPE html>",
        "<html><head>",
        f"<title>{html.escape(doc.title)}</title>",
        "<style>body{font-family:Arial,sans-serif;margin:40px}h1{border-bottom:2px solid #0066cc}"
        "h2{color:#0066cc;margin-top:30px}.summary{background:#f5f5f5;padding:20px;border-radius:5px}"
        "table{border-collapse:collapse}td,th{border:1px solid #ccc;padding:4px 8px}</style>",
        "</head><body>",
        f"<h1>{html.escape(doc.title)}</h1>",
        f"<p><strong>Period:</strong> {html.escape(doc.period_start)} to {html.escape(doc.period_end)}</p>",
        f'<div class="summary"><h2>Executive Summary</h2><p>{html.escape(doc.executive_summary)}</p></div>',
    ]
    for section in doc.sections:
        content = html.escape(section.get("content") or "").replace("\n", "<br/>")
        parts.append(f'<div class="section"><h2>{html.escape(section.get("section_title") or "")}</h2><p>{content}</p>')
        for _, frame in _section_tables(section):
            parts.append(frame.to_html(index=False, border=0))
        parts.append("</div>")
    parts.append("</body></html>")
    return ExportedFile("\n".join(parts).encode("utf-8"), "text/html", f"{base}.html")


# PUBLIC_INTERFACE
def export_report(doc: ReportDocument, export_format: str) -> ExportedFile:
    """
    Render a report document in the requested format.

    Supported formats:
      - csv: one row per section
      - excel / xlsx: summary, sections and one sheet per section table (openpyxl)
      - pdf: paragraphs and tables (reportlab)
      - html: standalone page
    """
    export_format = (export_format or "pdf").lower()
    base = _filename_base(doc.title)
    if export_format == "csv":
        return _to_csv(doc, base)
    if export_format in ("excel", "xlsx"):
        return _to_xlsx(doc, base)
    if export_format == "pdf":
        return _to_pdf(doc, base)
    if export_format == "html":
        return _to_html(doc, base)
    raise ErrorResponses.validation(
        f"Unsupported export format: {export_format}", details={"supported": list(EXPORT_FORMATS)}
    )


def document_from_sections(
    title: str, period_start: Any, period_end: Any, executive_summary: str, sections: Sequence[Any]
) -> ReportDocument:
    """Build a ReportDocument from ORM sections or section dicts."""
    items = []
    for section in sections:
        if isinstance(section, dict):
            items.append(section)
        else:
            items.append(
                {
                    "section_order": section.section_order,
                    "section_type": section.section_type,
                    "section_title": section.section_title,
                    "content": section.content,
                    "tables_data": section.tables_data,
                }
            )
    return ReportDocument(
        title=title,
        period_start=str(period_start),
        period_end=str(period_end),
        executive_summary=executive_summary or "",
        sections=items,
    )
