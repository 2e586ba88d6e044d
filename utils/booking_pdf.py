"""
Booking Summary PDF Renderer

Lays out the booking export (stay details, room, package code, health
information and every answered section) as a printable PDF.
The header block comes from a Jinja text template so wording can change
without touching the layout code.
"""

import os
from typing import Any, Dict
from xml.sax.saxutils import escape

from jinja2 import Environment, FileSystemLoader
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, HRFlowable
from reportlab.lib.enums import TA_CENTER

from core.config import logger

_templates_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "templates"))
_text_env = Environment(loader=FileSystemLoader(_templates_dir), autoescape=False)

_LABEL_STYLE = [
    ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
    ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 0), (-1, -1), 9),
    ('TEXTCOLOR', (0, 0), (0, -1), colors.HexColor('#555555')),
    ('TEXTCOLOR', (1, 0), (1, -1), colors.HexColor('#1b1b1b')),
    ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
    ('TOPPADDING', (0, 0), (-1, -1), 3),
    ('VALIGN', (0, 0), (-1, -1), 'TOP'),
]


def _text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return escape(str(value))


def render_pdf(template_path: str, data: Dict[str, Any], output_path: str) -> str:
    """
    Render the booking export to `output_path`.

    template_path is relative to templates/ and renders the header lines;
    lines starting with '# ' become headings.
    """
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'ExportTitle',
        parent=styles['Heading1'],
        fontSize=18,
        alignment=TA_CENTER,
        textColor=colors.HexColor('#1B4F72'),
        fontName='Helvetica-Bold',
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        'ExportHeading',
        parent=styles['Heading2'],
        fontSize=12,
        spaceBefore=12,
        spaceAfter=6,
        textColor=colors.HexColor('#1B4F72'),
        fontName='Helvetica-Bold',
    )
    body_style = ParagraphStyle(
        'ExportBody',
        parent=styles['Normal'],
        fontSize=9,
        leading=12,
        textColor=colors.HexColor('#333333'),
    )

    header = _text_env.get_template(template_path).render(**data)

    story = []
    first = True
    for line in header.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("# "):
            story.append(Paragraph(escape(line[2:]), title_style if first else heading_style))
            first = False
        else:
            story.append(Paragraph(escape(line), body_style))
    story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#1B4F72'), spaceBefore=6, spaceAfter=10))

    # Stay details
    story.append(Paragraph("STAY DETAILS", heading_style))
    stay_rows = [
        ["Check in:", _text(data.get("checkin_date"))],
        ["Check out:", _text(data.get("checkout_date"))],
        ["Arrival time:", _text(data.get("arrival_time"))],
        ["Room:", _text(data.get("room_label"))],
        ["Guests:", _text(data.get("total_guests"))],
        ["Adults / Children / Infants:", f"{_text(data.get('adults'))} / {_text(data.get('children'))} / {_text(data.get('infants'))}"],
        ["Assistance animal:", _text(bool(data.get("pets")))],
        ["Package:", _text(data.get("package"))],
        ["Course:", _text(data.get("course"))],
        ["Package code:", _text(data.get("package_course_code"))],
    ]
    table = Table(stay_rows, colWidths=[2 * inch, 4.8 * inch])
    table.setStyle(TableStyle(_LABEL_STYLE))
    story.append(table)

    health = data.get("healthinfo") or []
    if health:
        story.append(Paragraph(f"HEALTH INFORMATION (updated {_text(data.get('healthinfo_updated_date'))})", heading_style))
        rows = [[Paragraph(_text(h.get("diagnose")), body_style), "Yes" if h.get("answer") else "No"] for h in health]
        health_table = Table(rows, colWidths=[5.6 * inch, 1.2 * inch])
        health_table.setStyle(TableStyle([
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e0e0e0')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        story.append(health_table)

    for section in data.get("sections") or []:
        questions = section.get("questions") or []
        if not questions:
            continue
        story.append(Paragraph(escape(str(section.get("label") or "")).upper(), heading_style))
        rows = [
            [Paragraph(_text(q.get("question") or q.get("label")), body_style), Paragraph(_text(q.get("answer")), body_style)]
            for q in questions
        ]
        section_table = Table(rows, colWidths=[3.4 * inch, 3.4 * inch])
        section_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LINEBELOW', (0, 0), (-1, -1), 0.25, colors.HexColor('#e0e0e0')),
        ]))
        story.append(section_table)
        story.append(Spacer(1, 6))

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    doc = SimpleDocTemplate(
        output_path,
        pagesize=A4,
        rightMargin=0.6 * inch,
        leftMargin=0.6 * inch,
        topMargin=0.6 * inch,
        bottomMargin=0.6 * inch,
        title=f"Booking {data.get('booking_uuid', '')}",
    )
    doc.build(story)
    logger.info(f"[pdf] rendered booking export {output_path}")
    return output_path
