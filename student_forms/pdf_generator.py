"""
PDF Generator Module

Renders the student personal details form and the media release form as
printable A4 documents using ReportLab.

Design Decisions:
=================

1. Determinism Enforcement:
   - All date/time references use the generated_at timestamp passed in
   - Invariant mode keeps ReportLab from embedding the wall clock
   - Same field values + timestamp = identical bytes

2. Layout:
   - One table per form section, label on the left, value on the right
   - Location values are shown by display name, not id
   - Checkboxes render as Yes / No

3. Footer:
   - Left: organisation and generation date
   - Right: Page X
"""

import io
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, Flowable
)
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab import rl_config

from student_forms.config import FormConfig
from student_forms.fields import (
    LOCATION_FIELDS, FieldId, FieldKind, FieldSpec, FieldValues, FormName, fields_by_section
)
from student_forms.locations import LocationSelection
from student_forms.utils import calculate_sha256, escape_text, format_date, sanitize_filename_part

# Enable invariant mode for deterministic PDF generation
rl_config.invariant = 1


# Page dimensions
PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_LEFT = 18 * mm
MARGIN_RIGHT = 18 * mm
MARGIN_TOP = 18 * mm
MARGIN_BOTTOM = 22 * mm

FORM_LABELS = {
    FormName.STUDENT: 'Student_Personal_Details',
    FormName.MEDIA_RELEASE: 'Media_Release_Form',
}

FORM_TITLES = {
    FormName.STUDENT: 'Student Personal Details Form',
    FormName.MEDIA_RELEASE: 'Media Release Consent Form',
}

SECTION_TITLES = {
    'personal': 'Personal Information',
    'location': 'Home Location',
    'marital': 'Marital Status',
    'family': 'Family Information',
    'emergency': 'Emergency Contacts',
    'academic': 'Academic Background',
    'interests': 'Interests and Activities',
    'additional': 'Additional Information',
    'consent': 'Data Protection Consent',
    'media_release': 'Media Release',
}

MEDIA_RELEASE_STATEMENT = (
    'I hereby grant the {org} permission to use photographs, video recordings and '
    'audio recordings in which I appear, taken during university activities, in its '
    'publications, website, social media and other promotional material. I understand '
    'that I will not receive compensation for this use and that I may withdraw this '
    'consent in writing at any time for future publications.'
)

CONSENT_STATEMENT = (
    'I consent to the {org} processing the personal data in this form for registration, '
    'student welfare and administrative purposes, and I acknowledge my rights of access, '
    'correction and deletion under the Kenya Data Protection Act, 2019.'
)


class SignatureBlock(Flowable):
    """Name, signature and date lines for a signed form."""

    def __init__(self, name: str = '', signed_on: str = '', width: float = 400):
        super().__init__()
        self.name = name
        self.signed_on = signed_on
        self.block_width = width
        self.line_height = 22

    def wrap(self, availWidth, availHeight):
        self.height = 3 * self.line_height + 20
        return (min(self.block_width, availWidth), self.height)

    def draw(self):
        canvas = self.canv
        y = self.height - 20

        canvas.setFont('Helvetica', 10)
        canvas.drawString(0, y, 'Name:')
        if self.name:
            canvas.setFont('Helvetica-Bold', 10)
            canvas.drawString(100, y, self.name)
        canvas.line(100, y - 2, self.block_width, y - 2)
        y -= self.line_height

        canvas.setFont('Helvetica', 10)
        canvas.drawString(0, y, 'Signature:')
        canvas.line(100, y - 2, self.block_width, y - 2)
        y -= self.line_height

        canvas.drawString(0, y, 'Date:')
        if self.signed_on:
            canvas.drawString(100, y, self.signed_on)
        canvas.line(100, y - 2, 220, y - 2)


def create_styles() -> Dict[str, ParagraphStyle]:
    """Create paragraph styles for the form documents."""
    styles = getSampleStyleSheet()

    return {
        'org': ParagraphStyle(
            'OrgName',
            parent=styles['Heading1'],
            fontSize=16,
            leading=22,
            alignment=TA_CENTER,
            spaceAfter=4,
            fontName='Helvetica-Bold',
        ),
        'title': ParagraphStyle(
            'FormTitle',
            parent=styles['Heading2'],
            fontSize=13,
            leading=18,
            alignment=TA_CENTER,
            spaceAfter=18,
            fontName='Helvetica-Bold',
        ),
        'section': ParagraphStyle(
            'SectionHeading',
            parent=styles['Heading3'],
            fontSize=11,
            leading=15,
            spaceBefore=12,
            spaceAfter=6,
            fontName='Helvetica-Bold',
            textColor=colors.HexColor('#1a1a1a'),
        ),
        'normal': ParagraphStyle(
            'FormNormal',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            alignment=TA_JUSTIFY,
            spaceAfter=8,
            fontName='Helvetica',
        ),
        'cell': ParagraphStyle(
            'FormCell',
            parent=styles['Normal'],
            fontSize=9,
            leading=12,
            fontName='Helvetica',
        ),
        'cell_label': ParagraphStyle(
            'FormCellLabel',
            parent=styles['Normal'],
            fontSize=9,
            leading=12,
            fontName='Helvetica-Bold',
        ),
    }


def generate_filename(form: FormName, values: FieldValues, today: Optional[date] = None,
                      org_code: str = 'UoE') -> str:
    """
    Download filename for a rendered form.

    <OrgCode>_<FormLabel>_<Name>_<AdmissionNumber>_<YYYY-MM-DD>.pdf, with every
    character outside [A-Za-z0-9] stripped from the name and the admission
    number. An empty name becomes 'Student'.
    """
    today = today or date.today()
    name = sanitize_filename_part(values.text(FieldId.FULL_NAME)) or 'Student'
    admission = sanitize_filename_part(values.text(FieldId.ADMISSION_NUMBER))
    return f'{org_code}_{FORM_LABELS[form]}_{name}_{admission}_{today.isoformat()}.pdf'


def _display_value(spec: FieldSpec, values: FieldValues, selection: Optional[LocationSelection]) -> str:
    field_id = spec.field_id

    if selection is not None and field_id in LOCATION_FIELDS:
        level = dict(zip(LOCATION_FIELDS, selection.levels()))[field_id]
        return level.display_name if level else ''

    if spec.kind == FieldKind.CHECKBOX:
        return 'Yes' if values.checked(field_id) else 'No'
    if spec.kind == FieldKind.DATE:
        return format_date(values.text(field_id).strip())
    return values.text(field_id).strip()


def _section_table(specs: List[FieldSpec], values: FieldValues,
                   selection: Optional[LocationSelection], styles) -> Table:
    rows = [
        [Paragraph(escape_text(spec.label), styles['cell_label']),
         Paragraph(escape_text(_display_value(spec, values, selection)), styles['cell'])]
        for spec in specs
    ]
    usable_width = PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT
    table = Table(rows, colWidths=[usable_width * 0.38, usable_width * 0.62])
    table.setStyle(TableStyle([
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#999999')),
        ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#f2f2f2')),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    return table


def _footer_callback(org_name: str, generated_at: datetime):
    def footer(canvas, doc):
        canvas.saveState()
        canvas.setFont('Helvetica', 8)
        canvas.setFillColor(colors.HexColor('#666666'))
        canvas.drawString(MARGIN_LEFT, 12 * mm,
                          f'{org_name} | Generated {generated_at.strftime("%d %B %Y %H:%M")} UTC')
        canvas.drawRightString(PAGE_WIDTH - MARGIN_RIGHT, 12 * mm, f'Page {doc.page}')
        canvas.restoreState()
    return footer


def _build(story: List, title: str, config: FormConfig, generated_at: datetime) -> Tuple[bytes, str]:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=MARGIN_LEFT,
        rightMargin=MARGIN_RIGHT,
        topMargin=MARGIN_TOP,
        bottomMargin=MARGIN_BOTTOM,
        # Ensure deterministic PDF metadata
        title=title,
        author=config.org_name,
        creator=config.org_name,
    )
    footer = _footer_callback(config.org_name, generated_at)
    doc.build(story, onFirstPage=footer, onLaterPages=footer)

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes, calculate_sha256(pdf_bytes)


def render_student_form(values: FieldValues, selection: Optional[LocationSelection] = None,
                        config: Optional[FormConfig] = None,
                        generated_at: Optional[datetime] = None) -> Tuple[bytes, str]:
    """
    Render the student personal details form.

    Args:
        values: Current field values
        selection: Resolved location selection, for display names
        config: Organisation name
        generated_at: Timestamp printed in the footer

    Returns:
        Tuple of (PDF bytes, SHA256 hash)
    """
    config = config or FormConfig()
    generated_at = generated_at or datetime.utcnow()
    styles = create_styles()

    story = [
        Paragraph(escape_text(config.org_name.upper()), styles['org']),
        Paragraph(FORM_TITLES[FormName.STUDENT], styles['title']),
    ]

    for section, specs in fields_by_section(FormName.STUDENT).items():
        block = [Paragraph(SECTION_TITLES.get(section, section.title()), styles['section'])]
        if section == 'consent':
            block.append(Paragraph(escape_text(CONSENT_STATEMENT.format(org=config.org_name)),
                                   styles['normal']))
        block.append(_section_table(specs, values, selection, styles))
        story.extend(block)

    story.append(Spacer(1, 16))
    story.append(SignatureBlock(name=values.text(FieldId.FULL_NAME).strip().upper()))

    return _build(story, FORM_TITLES[FormName.STUDENT], config, generated_at)


def render_media_release(values: FieldValues, config: Optional[FormConfig] = None,
                         generated_at: Optional[datetime] = None) -> Tuple[bytes, str]:
    """Render the media release consent form. Returns (PDF bytes, SHA256 hash)."""
    config = config or FormConfig()
    generated_at = generated_at or datetime.utcnow()
    styles = create_styles()

    story = [
        Paragraph(escape_text(config.org_name.upper()), styles['org']),
        Paragraph(FORM_TITLES[FormName.MEDIA_RELEASE], styles['title']),
        Paragraph(escape_text(MEDIA_RELEASE_STATEMENT.format(org=config.org_name)), styles['normal']),
        Spacer(1, 8),
    ]
    for specs in fields_by_section(FormName.MEDIA_RELEASE).values():
        story.append(_section_table(specs, values, None, styles))

    story.append(Spacer(1, 16))
    story.append(SignatureBlock(
        name=values.text(FieldId.MEDIA_SIGNATURE_NAME).strip(),
        signed_on=format_date(values.text(FieldId.MEDIA_DATE).strip()),
    ))

    return _build(story, FORM_TITLES[FormName.MEDIA_RELEASE], config, generated_at)


def render_form(form: FormName, values: FieldValues, selection: Optional[LocationSelection] = None,
                config: Optional[FormConfig] = None,
                generated_at: Optional[datetime] = None) -> Tuple[bytes, str]:
    if form == FormName.MEDIA_RELEASE:
        return render_media_release(values, config, generated_at)
    return render_student_form(values, selection, config, generated_at)


def verify_pdf_integrity(pdf_bytes: bytes, expected_hash: str) -> bool:
    """
    Verify PDF integrity by computing hash.

    Args:
        pdf_bytes: PDF content
        expected_hash: Expected SHA256 hash

    Returns:
        True if integrity verified
    """
    actual_hash = calculate_sha256(pdf_bytes)
    return actual_hash == expected_hash
