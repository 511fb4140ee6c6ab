"""Checkout API: cart to order, payment intents and payment finalization."""
from flask import Blueprint, jsonify

from jewelry.blueprints.orders import serialize_order
from jewelry.blueprints.quotations import json_body, validated
from jewelry.database import get_session
from jewelry.exceptions import BadRequestError
from jewelry.forms.api_forms import CheckoutForm, CheckoutFinalizeForm, CustomerResponseForm, QuotationLineForm
from jewelry.services import checkout_service

checkout_bp = Blueprint('checkout', __name__, url_prefix='/api/checkout')


@checkout_bp.route('', methods=['POST'])
def start_checkout():
    """Body: {customer_id, lines: [{product_id, product_variant_id?, quantity?}]}"""
    payload = json_body()
    form = validated(CheckoutForm, payload)

    lines = payload.get('lines')
    if not isinstance(lines, list) or not lines:
        raise BadRequestError('Cart is empty.')

    parsed_lines = []
    for line in lines:
        if not isinstance(line, dict):
            raise BadRequestError('Cart lines must be JSON objects')
        line_form = validated(QuotationLineForm, line)
        parsed_lines.append({
            'product_id': line_form.product_id.data,
            'product_variant_id': line_form.product_variant_id.data,
            'quantity': line_form.quantity.data,
        })

    result = checkout_service.initialize(get_session(), form.customer_id.data, parsed_lines)
    return jsonify(result), 201


@checkout_bp.route('/orders/<int:order_id>/pay', methods=['POST'])
def pay_order(order_id):
    """Reopen payment for an order in pending_payment or payment_failed. Body: {customer_id}"""
    form = validated(CustomerResponseForm, json_body())
    result = checkout_service.resume_payment(get_session(), order_id, form.customer_id.data)
    return jsonify(result)


@checkout_bp.route('/finalize', methods=['POST'])
def finalize_checkout():
    """Body: {provider_reference, customer_id?}"""
    form = validated(CheckoutFinalizeForm, json_body())
    order = checkout_service.finalize(
        get_session(), form.provider_reference.data, customer_id=form.customer_id.data
    )
    return jsonify(serialize_order(order))
