"""Quotations API: submission, admin review and customer confirmation."""
from flask import Blueprint, request, jsonify, send_file, current_app

from jewelry.database import get_session
from jewelry.exceptions import BadRequestError
from jewelry.forms.api_forms import (
    QuotationCreateForm, QuotationLineForm, AdminNotesForm,
    RequestConfirmationForm, CustomerResponseForm, GroupItemForm
)
from jewelry.services import quotation_service
from jewelry.services.quotation_pdf_service import generate_quotation_pdf

quotations_bp = Blueprint('quotations', __name__, url_prefix='/api/quotations')


def json_body():
    """Parsed JSON object of the request; empty dict for an empty body."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BadRequestError('Request body must be a JSON object')
    return payload


def validated(form_class, payload):
    form = form_class(data=payload)
    if not form.validate():
        raise BadRequestError('Invalid request', payload={'errors': form.errors})
    return form


def serialize_quotation(quotation):
    return {
        'id': quotation.id,
        'quotation_group_id': quotation.quotation_group_id,
        'customer_id': quotation.customer_id,
        'product_id': quotation.product_id,
        'product_variant_id': quotation.product_variant_id,
        'quantity': quotation.quantity,
        'status': quotation.status,
        'notes': quotation.notes,
        'admin_notes': quotation.admin_notes,
        'approved_at': quotation.approved_at.isoformat() if quotation.approved_at else None,
        'order_id': quotation.order_id,
    }


@quotations_bp.route('', methods=['POST'])
def create_quotation():
    """Submit a quotation group. Body: {customer_id, notes?, lines: [{product_id, product_variant_id?, quantity?}]}"""
    payload = json_body()
    form = validated(QuotationCreateForm, payload)

    lines = payload.get('lines')
    if not isinstance(lines, list) or not lines:
        raise BadRequestError('At least one quotation line is required')

    parsed_lines = []
    for line in lines:
        if not isinstance(line, dict):
            raise BadRequestError('Quotation lines must be JSON objects')
        line_form = validated(QuotationLineForm, line)
        parsed_lines.append({
            'product_id': line_form.product_id.data,
            'product_variant_id': line_form.product_variant_id.data,
            'quantity': line_form.quantity.data,
        })

    result = quotation_service.create_quotation(
        get_session(), form.customer_id.data, parsed_lines, notes=form.notes.data
    )
    return jsonify(result), 201


@quotations_bp.route('/<int:quotation_id>/approve', methods=['POST'])
def approve_quotation(quotation_id):
    form = validated(AdminNotesForm, json_body())
    result = quotation_service.approve(get_session(), quotation_id, admin_notes=form.admin_notes.data)
    return jsonify(result), 201


@quotations_bp.route('/<int:quotation_id>/reject', methods=['POST'])
def reject_quotation(quotation_id):
    form = validated(AdminNotesForm, json_body())
    result = quotation_service.reject(get_session(), quotation_id, admin_notes=form.admin_notes.data)
    return jsonify(result)


@quotations_bp.route('/<int:quotation_id>/request-confirmation', methods=['POST'])
def request_confirmation(quotation_id):
    form = validated(RequestConfirmationForm, json_body())
    result = quotation_service.request_confirmation(
        get_session(),
        quotation_id,
        notes=form.notes.data,
        quantity=form.quantity.data,
        product_variant_id=form.product_variant_id.data
    )
    return jsonify(result)


@quotations_bp.route('/<int:quotation_id>/confirm', methods=['POST'])
def confirm_quotation(quotation_id):
    form = validated(CustomerResponseForm, json_body())
    return jsonify(quotation_service.confirm(get_session(), quotation_id, form.customer_id.data))


@quotations_bp.route('/<int:quotation_id>/decline', methods=['POST'])
def decline_quotation(quotation_id):
    form = validated(CustomerResponseForm, json_body())
    return jsonify(quotation_service.decline(get_session(), quotation_id, form.customer_id.data))


@quotations_bp.route('/groups/<group_id>/items', methods=['POST'])
def add_group_item(group_id):
    form = validated(GroupItemForm, json_body())
    quotation = quotation_service.add_item(
        get_session(),
        group_id,
        form.product_id.data,
        product_variant_id=form.product_variant_id.data,
        quantity=form.quantity.data if form.quantity.data is not None else 1,
        admin_notes=form.admin_notes.data
    )
    return jsonify(serialize_quotation(quotation)), 201


@quotations_bp.route('/groups/<group_id>/product', methods=['PUT'])
def update_group_product(group_id):
    form = validated(GroupItemForm, json_body())
    result = quotation_service.update_product(
        get_session(),
        group_id,
        form.product_id.data,
        product_variant_id=form.product_variant_id.data,
        quantity=form.quantity.data,
        admin_notes=form.admin_notes.data,
        quotation_id=form.quotation_id.data
    )
    return jsonify(result)


@quotations_bp.route('/groups/<group_id>', methods=['GET'])
def view_group(group_id):
    """Group lines with their current pricing."""
    summary = quotation_service.quote_group(get_session(), group_id)
    return jsonify({
        'quotation_group_id': group_id,
        'lines': [
            dict(
                serialize_quotation(line['quotation']),
                unit=line['breakdown'].to_dict(),
                line_subtotal=float(line['line_subtotal']),
                line_discount=float(line['line_discount']),
                line_total=float(line['line_total']),
            )
            for line in summary['lines']
        ],
        'subtotal': float(summary['subtotal']),
        'discount': float(summary['discount']),
        'tax_rate': float(summary['tax_rate']),
        'tax': float(summary['tax']),
        'total': float(summary['total']),
    })


@quotations_bp.route('/groups/<group_id>/pdf', methods=['GET'])
def download_pdf(group_id):
    business_info = {
        'name': current_app.config.get('BUSINESS_NAME', ''),
        'address': current_app.config.get('BUSINESS_ADDRESS', ''),
        'phone': current_app.config.get('BUSINESS_PHONE', ''),
        'email': current_app.config.get('BUSINESS_EMAIL', ''),
        'currency': current_app.config.get('DEFAULT_CURRENCY', 'INR'),
    }
    pdf_buffer = generate_quotation_pdf(get_session(), group_id, business_info)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f"quotation_{group_id}.pdf"
    )
