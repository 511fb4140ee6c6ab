"""Orders API: status workflow and order details."""
from flask import Blueprint, jsonify

from jewelry.blueprints.quotations import json_body, validated
from jewelry.database import get_session
from jewelry.exceptions import BadRequestError
from jewelry.forms.api_forms import OrderStatusForm
from jewelry.services import order_workflow_service

orders_bp = Blueprint('orders', __name__, url_prefix='/api/orders')


def serialize_order(order):
    return {
        'id': order.id,
        'reference': order.reference,
        'customer_id': order.customer_id,
        'quotation_group_id': order.quotation_group_id,
        'status': order.status,
        'currency': order.currency,
        'subtotal': float(order.subtotal_amount),
        'discount': float(order.discount_amount),
        'tax': float(order.tax_amount),
        'total': float(order.total_amount),
        'price_breakdown': order.price_breakdown,
        'status_meta': order.status_meta,
        'items': [
            {
                'id': item.id,
                'product_id': item.product_id,
                'product_variant_id': item.product_variant_id,
                'sku': item.sku,
                'name': item.name,
                'quantity': item.quantity,
                'unit_price': float(item.unit_price),
                'total_price': float(item.total_price),
                'metadata': item.item_metadata,
            }
            for item in order.items
        ],
        'history': [
            {
                'status': entry.status,
                'customer_id': entry.customer_id,
                'meta': entry.meta,
                'created_at': entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in order.history
        ],
    }


@orders_bp.route('/<int:order_id>', methods=['GET'])
def view_order(order_id):
    order = order_workflow_service.get_order(get_session(), order_id)
    return jsonify(serialize_order(order))


@orders_bp.route('/<int:order_id>/status', methods=['POST'])
def change_status(order_id):
    """Body: {status, meta?, actor_id?, actor_kind?}"""
    payload = json_body()
    form = validated(OrderStatusForm, payload)

    meta = payload.get('meta') or {}
    if not isinstance(meta, dict):
        raise BadRequestError('meta must be a JSON object')

    order = order_workflow_service.transition_order(
        get_session(),
        order_id,
        form.status.data,
        meta_patch=meta,
        actor_id=form.actor_id.data,
        actor_kind=form.actor_kind.data
    )
    return jsonify(serialize_order(order))
