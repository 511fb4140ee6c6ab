"""
Checkout: a priced cart becomes an order awaiting payment.

initialize() prices the submitted lines against one instant, creates the
order in pending_payment with its items and first history row, and opens a
payment intent with the gateway driver, all in one transaction. finalize()
asks the driver how the intent ended and moves the order to pending (paid,
waiting for production) or payment_failed through the order workflow.
"""
import logging
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context

from jewelry.exceptions import BadRequestError, NotFoundError, PaymentFailedError
from jewelry.models import (
    Customer, Order, OrderItem, OrderStatus, Payment, PaymentStatus, OPEN_PAYMENT_STATUSES
)
from jewelry.services import pricing_service
from jewelry.services.order_workflow_service import record_history, transition_order
from jewelry.services.payment_gateway import SETTLED_INTENT_STATUSES, get_driver
from jewelry.services.quotation_service import (
    generate_order_reference, load_product, load_variant, validate_quantity
)
from jewelry.services.tax_service import get_tax_rate
from jewelry.utils.clock import system_clock
from jewelry.utils.money import as_float, money

logger = logging.getLogger(__name__)

AWAITING_PAYMENT_STATUSES = (OrderStatus.PENDING_PAYMENT.value, OrderStatus.PAYMENT_FAILED.value)


def _currency() -> str:
    return current_app.config.get('DEFAULT_CURRENCY', 'INR') if has_app_context() else 'INR'


def price_cart(session, customer: Customer, lines: List[Dict[str, Any]], now) -> Dict[str, Any]:
    """Validate and price cart lines against one instant; tax applied once on the total."""
    priced = []
    for line in lines:
        quantity = validate_quantity(line.get('quantity', 1))
        product = load_product(session, line.get('product_id'))
        variant = load_variant(session, product, line.get('product_variant_id'), quantity)
        breakdown = pricing_service.calculate(
            session, product, variant, quantity, customer=customer, now=now
        )
        priced.append({
            'product': product,
            'variant': variant,
            'breakdown': breakdown,
            'quantity': quantity,
        })
    return pricing_service.summarize_lines(priced, get_tax_rate(session))


def _breakdown_snapshot(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'items': [
            {
                'product_id': line['product'].id,
                'product_variant_id': line['variant'].id if line['variant'] else None,
                'unit': line['breakdown'].to_dict(),
                'quantity': line['quantity'],
                'line_subtotal': as_float(line['line_subtotal']),
                'line_discount': as_float(line['line_discount']),
            }
            for line in summary['lines']
        ],
        'subtotal': as_float(summary['subtotal']),
        'discount': as_float(summary['discount']),
        'tax_rate': float(summary['tax_rate']),
        'tax': as_float(summary['tax']),
        'total': as_float(summary['total']),
    }


def _create_order_items(session, order: Order, summary: Dict[str, Any]) -> None:
    for line in summary['lines']:
        product, variant = line['product'], line['variant']
        session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            product_variant_id=variant.id if variant else None,
            sku=product.sku,
            name=product.name,
            quantity=line['quantity'],
            unit_price=line['breakdown'].total,
            total_price=line['line_total'],
            price_breakdown=line['breakdown'].to_dict(),
            item_metadata={
                'source': 'checkout',
                'variant': {'id': variant.id, 'label': variant.label} if variant else None,
            }
        ))


def _open_payment(session, order: Order, driver) -> Payment:
    """Reuse the order's open attempt with this driver, or start a new one."""
    payment = session.query(Payment).filter(
        Payment.order_id == order.id,
        Payment.provider == driver.name,
        Payment.status.in_(OPEN_PAYMENT_STATUSES)
    ).order_by(Payment.id.desc()).first()

    intent = driver.ensure_intent(order, payment)

    if payment is None:
        payment = Payment(order_id=order.id, provider=driver.name, status=PaymentStatus.PENDING.value)
        session.add(payment)
    payment.provider_reference = intent['provider_reference']
    payment.amount = money(intent['amount'])
    payment.currency = intent['currency']
    meta = dict(payment.meta or {})
    meta['client_secret'] = intent.get('client_secret')
    payment.meta = meta
    session.flush()
    return payment


def _checkout_state(order: Order, payment: Payment, driver) -> Dict[str, Any]:
    return {
        'order_id': order.id,
        'reference': order.reference,
        'status': order.status,
        'currency': order.currency,
        'subtotal': as_float(order.subtotal_amount),
        'discount': as_float(order.discount_amount),
        'tax': as_float(order.tax_amount),
        'total': as_float(order.total_amount),
        'payment': {
            'payment_id': payment.id,
            'provider': payment.provider,
            'provider_reference': payment.provider_reference,
            'client_secret': (payment.meta or {}).get('client_secret'),
            'publishable_key': driver.publishable_key(),
        },
    }


def initialize(session, customer_id: int, lines: List[Dict[str, Any]], driver=None,
               clock=system_clock) -> Dict[str, Any]:
    """
    Turn cart lines into an order in pending_payment and open its payment.

    Inventory is checked but not reserved; stock only moves when staff
    process the paid order.
    """
    if not lines:
        raise BadRequestError('Cart is empty.')
    driver = driver or get_driver()

    try:
        customer = session.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError(f'Customer {customer_id} not found')

        now = clock.now()
        summary = price_cart(session, customer, lines, now)

        order = Order(
            reference=generate_order_reference(session),
            customer_id=customer.id,
            status=OrderStatus.PENDING_PAYMENT.value,
            currency=_currency(),
            subtotal_amount=summary['subtotal'],
            discount_amount=summary['discount'],
            tax_amount=summary['tax'],
            total_amount=summary['total'],
            price_breakdown=_breakdown_snapshot(summary),
            status_meta={'source': 'checkout'}
        )
        session.add(order)
        session.flush()

        _create_order_items(session, order, summary)
        record_history(
            session,
            order,
            OrderStatus.PENDING_PAYMENT.value,
            {'source': 'checkout', 'actor_kind': 'customer', 'actor_id': customer.id},
            customer_id=customer.id,
            clock=clock
        )
        payment = _open_payment(session, order, driver)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"[CHECKOUT] Order {order.reference} awaiting payment: total={order.total_amount} "
        f"via {driver.name} ({payment.provider_reference})"
    )
    return _checkout_state(order, payment, driver)


def resume_payment(session, order_id: int, customer_id: int, driver=None) -> Dict[str, Any]:
    """Reopen payment for an order still awaiting it (e.g. after a failed attempt)."""
    driver = driver or get_driver()

    try:
        order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order or order.customer_id != customer_id:
            raise NotFoundError(f'Order {order_id} not found')
        if order.status not in AWAITING_PAYMENT_STATUSES:
            raise BadRequestError('Order is not awaiting payment.')

        payment = _open_payment(session, order, driver)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[CHECKOUT] Payment reopened for order {order.reference} ({payment.provider_reference})")
    return _checkout_state(order, payment, driver)


def finalize(session, provider_reference: str, customer_id: Optional[int] = None, driver=None,
             clock=system_clock) -> Order:
    """
    Settle a payment attempt from the gateway's view of its intent.

    Settled intents move the order to pending; anything else marks the
    attempt failed, moves the order to payment_failed and raises
    PaymentFailedError. The payment update and the order transition commit
    together. Replaying a settled attempt returns the order unchanged.
    """
    query = session.query(Payment).join(Order, Payment.order_id == Order.id).filter(
        Payment.provider_reference == provider_reference
    )
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    payment = query.first()
    if not payment:
        raise NotFoundError('Payment not found')

    order = payment.order
    if payment.status == PaymentStatus.SUCCEEDED.value:
        return order

    driver = driver or get_driver(payment.provider)
    intent = driver.retrieve_intent(provider_reference)
    gateway_status = intent.get('status')

    if customer_id is not None:
        actor = {'actor_id': customer_id, 'actor_kind': 'customer'}
    else:
        actor = {'actor_id': None, 'actor_kind': 'admin'}

    meta = dict(payment.meta or {})
    meta['intent'] = intent
    payment.meta = meta

    if gateway_status not in SETTLED_INTENT_STATUSES:
        payment.status = PaymentStatus.FAILED.value
        transition_order(
            session,
            order.id,
            OrderStatus.PAYMENT_FAILED,
            {'source': 'payment_failure', 'provider_reference': provider_reference, 'gateway_status': gateway_status},
            clock=clock,
            **actor
        )
        logger.warning(f"[CHECKOUT] Payment {provider_reference} for order {order.reference} failed: {gateway_status}")
        raise PaymentFailedError(order.reference, gateway_status)

    payment.status = PaymentStatus.SUCCEEDED.value
    transition_order(
        session,
        order.id,
        OrderStatus.PENDING,
        {'source': 'payment_success', 'provider_reference': provider_reference},
        clock=clock,
        **actor
    )
    logger.info(f"[CHECKOUT] Payment {provider_reference} settled for order {order.reference}")
    _notify_admin(order)
    return order


def _notify_admin(order: Order) -> None:
    """Best-effort shop alert; never fails the payment."""
    try:
        from jewelry.services.email_service import send_order_paid_admin
        customer = order.customer
        send_order_paid_admin(
            order.reference,
            customer.name if customer else '',
            str(money(order.total_amount)),
            order.currency
        )
    except Exception as e:
        logger.error(f"[CHECKOUT] Admin payment notification for {order.reference} failed: {e}")
