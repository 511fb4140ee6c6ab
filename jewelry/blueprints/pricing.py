"""Pricing API: live price breakdown of a product."""
from flask import Blueprint, request, jsonify

from jewelry.database import get_session
from jewelry.exceptions import BadRequestError, NotFoundError
from jewelry.forms.api_forms import PriceQueryForm
from jewelry.models import Customer, Product, ProductVariant
from jewelry.services import pricing_service

pricing_bp = Blueprint('pricing', __name__, url_prefix='/api/pricing')


@pricing_bp.route('/products/<int:product_id>', methods=['GET'])
def product_price(product_id):
    """Unit breakdown for ?variant_id=&quantity=&customer_id=."""
    form = PriceQueryForm(request.args)
    if not form.validate():
        raise BadRequestError('Invalid request', payload={'errors': form.errors})

    session = get_session()
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')

    variant = None
    if form.variant_id.data:
        variant = session.query(ProductVariant).filter(
            ProductVariant.id == form.variant_id.data,
            ProductVariant.product_id == product.id
        ).first()
        if not variant:
            raise NotFoundError(f'Variant {form.variant_id.data} not found for product {product_id}')

    customer = None
    if form.customer_id.data:
        customer = session.query(Customer).filter(Customer.id == form.customer_id.data).first()
        if not customer:
            raise NotFoundError(f'Customer {form.customer_id.data} not found')

    breakdown = pricing_service.calculate(
        session, product, variant, form.quantity.data or 1, customer=customer
    )
    return jsonify(dict(
        breakdown.to_dict(),
        product_id=product.id,
        variant_id=variant.id if variant else None,
        quantity=form.quantity.data or 1,
    ))
