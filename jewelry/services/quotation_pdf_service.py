"""PDF rendering of a priced quotation group."""

from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Dict, Any

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from jewelry.services import quotation_service
from jewelry.utils.clock import system_clock


def _amount(value, currency: str) -> str:
    return f"{currency} {Decimal(value):,.2f}"


def _render_quotation_pdf(summary: Dict[str, Any], info: Dict[str, Any]) -> BytesIO:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()
    currency = info.get('currency', 'INR')

    title_style = ParagraphStyle(
        'QuotationTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#5B4524'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'QuotationHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and business header
    elements.append(Paragraph("QUOTATION", title_style))

    if info.get('name'):
        elements.append(Paragraph(f"<b>{info['name']}</b>", header_style))

    if info.get('address'):
        elements.append(Paragraph(info['address'], header_style))

    contact_parts = []
    if info.get('phone'):
        contact_parts.append(f"Tel: {info['phone']}")
    if info.get('email'):
        contact_parts.append(f"Email: {info['email']}")

    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Metadata
    issued_at = info.get('issued_at')
    if isinstance(issued_at, datetime):
        issued_at = issued_at.strftime('%d/%m/%Y')

    meta_rows = [
        ['Quotation:', info.get('quotation_group_id', '')],
        ['Date:', issued_at or ''],
    ]
    if info.get('customer_name'):
        meta_rows.append(['Customer:', info['customer_name']])

    meta_table = Table(meta_rows, colWidths=[2*inch, 4*inch])
    meta_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))

    elements.append(meta_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Lines
    table_data = [['Item', 'Qty', 'Unit price', 'Discount', 'Line total']]
    for line in summary['lines']:
        quotation = line['quotation']
        name = quotation.product.name
        if quotation.variant is not None and quotation.variant.label:
            name = f"{name} ({quotation.variant.label})"
        table_data.append([
            name,
            str(line['quantity']),
            _amount(line['breakdown'].subtotal, currency),
            _amount(line['line_discount'], currency),
            _amount(line['line_total'], currency),
        ])

    items_table = Table(table_data, colWidths=[2.7*inch, 0.5*inch, 1.2*inch, 1.1*inch, 1.2*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#7A5C2E')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (1, 1), (1, -1), 'CENTER'),
        ('ALIGN', (2, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F7F1E6')]),
    ]))

    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_rows = [
        ['Subtotal:', _amount(summary['subtotal'], currency)],
        ['Discount:', _amount(summary['discount'], currency)],
        [f"Tax ({summary['tax_rate']}%):", _amount(summary['tax'], currency)],
        ['TOTAL:', _amount(summary['total'], currency)],
    ]
    totals_table = Table(totals_rows, colWidths=[5.2*inch, 1.5*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -2), 10),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 14),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#27AE60')),
        ('BOX', (0, -1), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))

    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    footer_text = "<b>IMPORTANT:</b><br/>Prices follow the current metal rates and may change until approval.<br/><i>This is not an invoice.</i>"
    elements.append(Paragraph(footer_text, footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_quotation_pdf(session, quotation_group_id: str, business_info: Dict[str, Any],
                           clock=system_clock) -> BytesIO:
    """Price the group now and render it. NotFoundError for an unknown group."""
    summary = quotation_service.quote_group(session, quotation_group_id, clock=clock)

    info = dict(business_info)
    customer = summary['lines'][0]['quotation'].customer
    info.update({
        'quotation_group_id': quotation_group_id,
        'issued_at': clock.now(),
        'customer_name': customer.name if customer else None,
    })
    return _render_quotation_pdf(summary, info)
