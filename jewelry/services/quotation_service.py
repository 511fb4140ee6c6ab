"""
Quotation lifecycle and quotation-group to order conversion.

A quotation group is approved as a unit: approve() prices every eligible line
against one time snapshot, creates the order with its items and first history
row, marks the lines approved and decrements inventory, all in one
transaction. Notifications are sent after commit and never fail the operation.
"""
import logging
import secrets
import string
import uuid
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError

from jewelry.exceptions import (
    JewelryError, BadRequestError, NotFoundError, InsufficientInventoryError, ConversionConflictError
)
from jewelry.models import (
    Customer, Product, ProductVariant, Quotation, QuotationStatus, QuotationMessage,
    Order, OrderItem, OrderStatus, APPROVABLE_STATUSES
)
from jewelry.services import pricing_service
from jewelry.services.order_workflow_service import record_history
from jewelry.services.tax_service import get_tax_rate
from jewelry.utils.clock import system_clock
from jewelry.utils.money import as_float

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_LENGTH = 10
REFERENCE_ATTEMPTS = 5


# =====================================================
# LOOKUPS
# =====================================================

def get_quotation(session, quotation_id: int) -> Quotation:
    quotation = session.query(Quotation).filter(Quotation.id == quotation_id).first()
    if not quotation:
        raise NotFoundError(f'Quotation {quotation_id} not found')
    return quotation


def get_group(session, quotation_group_id: str, statuses=None, lock: bool = False) -> List[Quotation]:
    """Lines of a group ordered by id, optionally filtered by status and locked FOR UPDATE."""
    query = session.query(Quotation).filter(Quotation.quotation_group_id == quotation_group_id)
    if statuses is not None:
        query = query.filter(Quotation.status.in_(list(statuses)))
    if lock:
        query = query.with_for_update()
    return query.order_by(Quotation.id.asc()).all()


def _require_group(session, quotation_group_id: str) -> List[Quotation]:
    members = get_group(session, quotation_group_id)
    if not members:
        raise NotFoundError(f'Quotation group {quotation_group_id} not found')
    return members


def _ensure_not_approved(members: List[Quotation]) -> None:
    if any(q.status == QuotationStatus.APPROVED.value for q in members):
        raise BadRequestError('Quotation group has already been approved')


def load_product(session, product_id: int) -> Product:
    product = session.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def load_variant(session, product: Product, variant_id: Optional[int], quantity: int) -> Optional[ProductVariant]:
    """Variant must belong to the product and hold enough pieces."""
    if not variant_id:
        return None

    variant = session.query(ProductVariant).filter(ProductVariant.id == variant_id).first()
    if not variant:
        raise NotFoundError(f'Product variant {variant_id} not found')
    if variant.product_id != product.id:
        raise BadRequestError(f'Variant {variant_id} does not belong to product {product.id}')
    if variant.has_limited_inventory and variant.inventory_quantity < quantity:
        raise InsufficientInventoryError(variant.label or product.name, quantity, variant.inventory_quantity)
    return variant


def validate_quantity(quantity) -> int:
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise BadRequestError('Quantity must be a whole number')
    if quantity < 1:
        raise BadRequestError('Quantity must be at least 1')
    return quantity


# =====================================================
# CREATION AND MESSAGES
# =====================================================

def create_quotation(session, customer_id: int, lines: List[Dict[str, Any]], notes: Optional[str] = None) -> Dict[str, Any]:
    """
    Submit one or more lines as a new quotation group.

    Every submission gets a fresh group id; lines are never grouped by
    creation time.
    """
    if not lines:
        raise BadRequestError('At least one quotation line is required')

    try:
        customer = session.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise NotFoundError(f'Customer {customer_id} not found')

        group_id = str(uuid.uuid4())
        created = []
        for line in lines:
            quantity = validate_quantity(line.get('quantity', 1))
            product = load_product(session, line.get('product_id'))
            variant = load_variant(session, product, line.get('product_variant_id'), quantity)

            quotation = Quotation(
                customer_id=customer.id,
                quotation_group_id=group_id,
                product_id=product.id,
                product_variant_id=variant.id if variant else None,
                quantity=quantity,
                status=QuotationStatus.PENDING.value,
                notes=notes
            )
            session.add(quotation)
            created.append(quotation)

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Group {group_id} submitted by customer {customer_id} ({len(created)} lines)")
    _notify('send_quotation_submitted_admin', group_id, customer.name, len(created))
    return {
        'quotation_group_id': group_id,
        'quotation_ids': [q.id for q in created],
        'message': 'Quotation submitted successfully.',
    }


def _add_message(session, quotation_group_id: str, message: str, sender: str = 'admin',
                 customer_id: Optional[int] = None) -> QuotationMessage:
    entry = QuotationMessage(
        quotation_group_id=quotation_group_id,
        customer_id=customer_id,
        sender=sender,
        message=message
    )
    session.add(entry)
    return entry


def add_message(session, quotation_group_id: str, message: str, sender: str = 'admin',
                customer_id: Optional[int] = None) -> QuotationMessage:
    """Append a conversation message to a group."""
    if not message or not message.strip():
        raise BadRequestError('Message cannot be empty')
    if sender not in ('admin', 'customer'):
        raise BadRequestError(f'Unknown message sender: {sender}')

    try:
        _require_group(session, quotation_group_id)
        entry = _add_message(session, quotation_group_id, message.strip(), sender, customer_id)
        session.commit()
        return entry
    except Exception:
        session.rollback()
        raise


# =====================================================
# PRICING
# =====================================================

def price_group(session, members: List[Quotation], now, tax_rate=None) -> Dict[str, Any]:
    """Price each line against the same instant and aggregate the group."""
    if tax_rate is None:
        tax_rate = get_tax_rate(session)

    lines = []
    for quotation in members:
        breakdown = pricing_service.calculate(
            session,
            quotation.product,
            quotation.variant,
            quotation.quantity,
            customer=quotation.customer,
            now=now
        )
        lines.append({
            'quotation': quotation,
            'breakdown': breakdown,
            'quantity': quotation.quantity,
        })
    return pricing_service.summarize_lines(lines, tax_rate)


def quote_group(session, quotation_group_id: str, clock=system_clock) -> Dict[str, Any]:
    """Current pricing of a group, for display and PDFs. Read-only."""
    members = _require_group(session, quotation_group_id)
    return price_group(session, members, clock.now())


# =====================================================
# APPROVAL (QUOTATION GROUP -> ORDER)
# =====================================================

def generate_order_reference(session) -> str:
    """Random reference not yet used by any order; the unique index is the final guard."""
    prefix = current_app.config.get('ORDER_REFERENCE_PREFIX', 'ORD') if has_app_context() else 'ORD'
    for _ in range(REFERENCE_ATTEMPTS):
        token = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_LENGTH))
        reference = f"{prefix}-{token}"
        exists = session.query(Order.id).filter(Order.reference == reference).first()
        if not exists:
            return reference
    raise RuntimeError('Could not generate a unique order reference')


def _decrement_inventory(session, variant_id: int, quantity: int) -> None:
    """Single guarded UPDATE: subtract, flooring at 0; unlimited (NULL) stock untouched."""
    session.execute(
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.inventory_quantity.isnot(None))
        .values(inventory_quantity=case(
            (ProductVariant.inventory_quantity >= quantity, ProductVariant.inventory_quantity - quantity),
            else_=0
        ))
        .execution_options(synchronize_session=False)
    )


def _breakdown_snapshot(summary: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'items': [
            {
                'quotation_id': line['quotation'].id,
                'quotation_group_id': line['quotation'].quotation_group_id,
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
        quotation = line['quotation']
        product = quotation.product
        variant = quotation.variant
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
                'quotation_id': quotation.id,
                'quotation_group_id': quotation.quotation_group_id,
                'variant': {'id': variant.id, 'label': variant.label} if variant else None,
            }
        ))


def approve(session, quotation_id: int, admin_notes: Optional[str] = None, clock=system_clock) -> Dict[str, Any]:
    """
    Convert the quotation's group into one order.

    Preconditions: the quotation is pending or customer_confirmed, and its
    group still has lines in those statuses. Everything up to the history row
    commits or rolls back together.
    """
    quotation = get_quotation(session, quotation_id)
    if quotation.status == QuotationStatus.APPROVED.value:
        raise BadRequestError('Quotation already approved')
    if quotation.status not in APPROVABLE_STATUSES:
        raise BadRequestError('Quotation must be confirmed by the customer before approval')

    group_id = quotation.quotation_group_id
    try:
        # Row locks serialize concurrent approvals of the same group
        members = get_group(session, group_id, statuses=APPROVABLE_STATUSES, lock=True)
        if not members:
            raise BadRequestError('No quotations found to approve')

        now = clock.now()
        summary = price_group(session, members, now)

        order = Order(
            reference=generate_order_reference(session),
            customer_id=quotation.customer_id,
            quotation_group_id=group_id,
            status=OrderStatus.IN_PRODUCTION.value,
            currency=current_app.config.get('DEFAULT_CURRENCY', 'INR') if has_app_context() else 'INR',
            subtotal_amount=summary['subtotal'],
            discount_amount=summary['discount'],
            tax_amount=summary['tax'],
            total_amount=summary['total'],
            price_breakdown=_breakdown_snapshot(summary),
            status_meta={'source': 'quotation_approval'}
        )
        session.add(order)
        session.flush()

        _create_order_items(session, order, summary)

        for member in members:
            member.status = QuotationStatus.APPROVED.value
            member.approved_at = now
            member.order_id = order.id
            if admin_notes is not None:
                member.admin_notes = admin_notes

            variant = member.variant
            if variant is not None and variant.has_limited_inventory:
                if variant.inventory_quantity < member.quantity:
                    logger.warning(
                        f"[QUOTATION] Variant {variant.id} holds {variant.inventory_quantity}, "
                        f"approving {member.quantity}; inventory floored at 0"
                    )
                _decrement_inventory(session, variant.id, member.quantity)

        quotation_ids = [m.id for m in members]
        record_history(
            session,
            order,
            OrderStatus.IN_PRODUCTION.value,
            {
                'source': 'quotation_approval',
                'quotation_group_id': group_id,
                'quotation_ids': quotation_ids,
            },
            customer_id=None,
            clock=clock
        )

        session.commit()
    except IntegrityError as e:
        session.rollback()
        _count_conversion('conflict')
        logger.warning(f"[QUOTATION] Conversion conflict on group {group_id}: {e}")
        raise ConversionConflictError(group_id)
    except JewelryError:
        session.rollback()
        _count_conversion('rejected')
        raise
    except Exception:
        session.rollback()
        _count_conversion('failed')
        logger.exception(f"[QUOTATION] Conversion of group {group_id} aborted")
        raise

    _count_conversion('approved')
    logger.info(
        f"[QUOTATION] Group {group_id} approved: order {order.reference} "
        f"lines={quotation_ids} total={summary['total']}"
    )

    customer = order.customer
    _notify(
        'send_quotation_approved',
        customer.email if customer else None,
        customer.name if customer else '',
        group_id,
        order.reference
    )

    return {
        'order_id': order.id,
        'reference': order.reference,
        'message': 'Quotations approved',
    }


# =====================================================
# REJECTION AND CONFIRMATION GATE
# =====================================================

def reject(session, quotation_id: int, admin_notes: Optional[str] = None) -> Dict[str, Any]:
    """Reject every non-rejected line of the quotation's group. No order is created."""
    quotation = get_quotation(session, quotation_id)
    group_id = quotation.quotation_group_id

    try:
        members = get_group(session, group_id, lock=True)
        _ensure_not_approved(members)

        for member in members:
            if member.status != QuotationStatus.REJECTED.value:
                member.status = QuotationStatus.REJECTED.value
                member.admin_notes = admin_notes
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Group {group_id} rejected")
    customer = quotation.customer
    _notify('send_quotation_rejected', customer.email, customer.name, group_id, admin_notes)
    return {'message': 'Quotations rejected'}


def _reopen_group(session, members: List[Quotation], admin_notes: Optional[str]) -> None:
    """Any content change sends the whole group back to the customer."""
    for member in members:
        member.status = QuotationStatus.PENDING_CUSTOMER_CONFIRMATION.value
        if admin_notes:
            member.admin_notes = admin_notes


def request_confirmation(session, quotation_id: int, notes: Optional[str] = None,
                         quantity: Optional[int] = None,
                         product_variant_id: Optional[int] = None) -> Dict[str, Any]:
    """Optionally adjust one line, then ask the customer to confirm the group."""
    quotation = get_quotation(session, quotation_id)
    group_id = quotation.quotation_group_id

    try:
        members = get_group(session, group_id, lock=True)
        _ensure_not_approved(members)

        new_quantity = validate_quantity(quantity) if quantity is not None else quotation.quantity
        if product_variant_id:
            variant = load_variant(session, quotation.product, product_variant_id, new_quantity)
            quotation.product_variant_id = variant.id
        quotation.quantity = new_quantity

        _reopen_group(session, members, notes)
        message = notes or 'Please review updated quotation details.'
        _add_message(session, group_id, message)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Confirmation requested for group {group_id}")
    customer = quotation.customer
    _notify('send_quotation_confirmation_request', customer.email, customer.name, group_id, message)
    return {'message': 'Confirmation requested'}


def add_item(session, quotation_group_id: str, product_id: int, product_variant_id: Optional[int] = None,
             quantity: int = 1, admin_notes: Optional[str] = None) -> Quotation:
    """Add a product line to an existing group and reopen confirmation."""
    try:
        members = _require_group(session, quotation_group_id)
        _ensure_not_approved(members)

        quantity = validate_quantity(quantity)
        product = load_product(session, product_id)
        variant = load_variant(session, product, product_variant_id, quantity)

        base = members[0]
        new_line = Quotation(
            customer_id=base.customer_id,
            quotation_group_id=quotation_group_id,
            product_id=product.id,
            product_variant_id=variant.id if variant else None,
            quantity=quantity,
            status=QuotationStatus.PENDING_CUSTOMER_CONFIRMATION.value,
            admin_notes=admin_notes
        )
        session.add(new_line)
        _reopen_group(session, members, admin_notes)

        message = admin_notes or f"Added new product '{product.name}' to quotation."
        _add_message(session, quotation_group_id, message)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Item {product.id} added to group {quotation_group_id}")
    customer = base.customer
    _notify('send_quotation_confirmation_request', customer.email, customer.name, quotation_group_id, message)
    return new_line


def update_product(session, quotation_group_id: str, product_id: int, product_variant_id: Optional[int] = None,
                   quantity: Optional[int] = None, admin_notes: Optional[str] = None,
                   quotation_id: Optional[int] = None) -> Dict[str, Any]:
    """Swap the product of one line (the first line unless quotation_id is given)."""
    try:
        members = _require_group(session, quotation_group_id)
        _ensure_not_approved(members)

        target = members[0]
        if quotation_id is not None:
            target = next((m for m in members if m.id == quotation_id), None)
            if target is None:
                raise NotFoundError(f'Quotation {quotation_id} is not part of group {quotation_group_id}')

        previous_name = target.product.name
        new_quantity = validate_quantity(quantity) if quantity is not None else target.quantity
        product = load_product(session, product_id)

        if product_variant_id:
            variant = load_variant(session, product, product_variant_id, new_quantity)
        elif target.variant is not None and target.variant.product_id == product.id:
            variant = target.variant
        else:
            variant = None

        target.product_id = product.id
        target.product_variant_id = variant.id if variant else None
        target.quantity = new_quantity
        _reopen_group(session, members, admin_notes)

        message = admin_notes or f"Product changed from '{previous_name}' to '{product.name}'."
        _add_message(session, quotation_group_id, message)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Line {target.id} of group {quotation_group_id} now product {product.id}")
    customer = target.customer
    _notify('send_quotation_confirmation_request', customer.email, customer.name, quotation_group_id, message)
    return {'message': 'Product updated'}


def _customer_response(session, quotation_id: int, customer_id: int, new_status: QuotationStatus,
                       message: str) -> Dict[str, Any]:
    quotation = get_quotation(session, quotation_id)
    if quotation.customer_id != customer_id:
        # Do not reveal other customers' quotations
        raise NotFoundError(f'Quotation {quotation_id} not found')

    group_id = quotation.quotation_group_id
    try:
        members = get_group(session, group_id, lock=True)
        if all(m.status == new_status.value for m in members):
            # Release the row locks; nothing to change
            session.rollback()
            return {'message': f'Quotation already {new_status.value.replace("customer_", "")}.'}

        awaiting = [m for m in members if m.status == QuotationStatus.PENDING_CUSTOMER_CONFIRMATION.value]
        if not awaiting:
            raise BadRequestError('No confirmation required for this quotation.')

        for member in awaiting:
            member.status = new_status.value
        _add_message(session, group_id, message, sender='customer', customer_id=customer_id)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[QUOTATION] Customer {customer_id} set group {group_id} to {new_status.value}")
    return {'message': message}


def confirm(session, quotation_id: int, customer_id: int) -> Dict[str, Any]:
    """Customer accepts the updated quotation; the group becomes approvable again."""
    return _customer_response(
        session, quotation_id, customer_id,
        QuotationStatus.CUSTOMER_CONFIRMED,
        'Customer approved the updated quotation.'
    )


def decline(session, quotation_id: int, customer_id: int) -> Dict[str, Any]:
    """Customer declines the updated quotation."""
    return _customer_response(
        session, quotation_id, customer_id,
        QuotationStatus.CUSTOMER_DECLINED,
        'Customer declined the updated quotation.'
    )


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _count_conversion(outcome: str) -> None:
    try:
        from jewelry.blueprints.metrics import count_conversion
        count_conversion(outcome)
    except Exception as e:
        logger.warning(f"[QUOTATION] Failed to record conversion metric: {e}")


def _notify(sender_name: str, *args) -> None:
    """Best-effort notification after commit; failures are logged and swallowed."""
    try:
        from jewelry.services import email_service
        sent = getattr(email_service, sender_name)(*args)
        if not sent:
            logger.warning(f"[QUOTATION] Notification {sender_name} was not delivered")
    except Exception as e:
        logger.error(f"[QUOTATION] Notification {sender_name} failed: {e}")
