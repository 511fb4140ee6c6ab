"""
Order status workflow.

Every status change goes through transition_order(), which updates the order
and appends one OrderStatusHistory row in the same transaction. History rows
are never rewritten.

The status graph is deliberately permissive: any known OrderStatus may follow
any other. Only unknown status values are rejected.
"""
import logging
from typing import Any, Dict, List, Optional

from jewelry.exceptions import BadRequestError, NotFoundError
from jewelry.models import Order, OrderStatus, OrderStatusHistory
from jewelry.utils.clock import system_clock

logger = logging.getLogger(__name__)

ACTOR_CUSTOMER = 'customer'
ACTOR_ADMIN = 'admin'
ACTOR_KINDS = (ACTOR_CUSTOMER, ACTOR_ADMIN)


def _normalize_status(status) -> str:
    value = status.value if isinstance(status, OrderStatus) else str(status or '').strip().lower()
    if value not in OrderStatus.values():
        raise BadRequestError(f'Unknown order status: {status}')
    return value


def record_history(session, order: Order, status: str, meta: Dict[str, Any],
                   customer_id: Optional[int], clock=system_clock) -> OrderStatusHistory:
    """Append a history row; the caller owns the transaction."""
    entry = OrderStatusHistory(
        order_id=order.id,
        status=status,
        customer_id=customer_id,
        meta=meta,
        created_at=clock.now()
    )
    session.add(entry)
    return entry


def transition_order(session, order_id: int, status, meta_patch: Optional[Dict[str, Any]] = None,
                     actor_id: Optional[int] = None, actor_kind: str = ACTOR_ADMIN,
                     clock=system_clock, notify: bool = True) -> Order:
    """
    Move an order to `status` atomically.

    1. load the order (NotFound if absent), locking its row
    2. shallow-merge meta_patch into the order's status meta
    3. persist the new status and merged meta
    4. append a history row with meta_patch + {actor_kind, actor_id}; the
       history's customer link is only set for customer actors
    """
    status = _normalize_status(status)
    if actor_kind not in ACTOR_KINDS:
        raise BadRequestError(f'Unknown actor kind: {actor_kind}')
    meta_patch = dict(meta_patch or {})

    try:
        order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
        if not order:
            raise NotFoundError(f'Order {order_id} not found')

        previous_status = order.status
        merged_meta = dict(order.status_meta or {})
        merged_meta.update(meta_patch)

        order.status = status
        order.status_meta = merged_meta

        history_meta = dict(meta_patch)
        history_meta.update({'actor_kind': actor_kind, 'actor_id': actor_id})
        record_history(
            session,
            order,
            status,
            history_meta,
            customer_id=actor_id if actor_kind == ACTOR_CUSTOMER else None,
            clock=clock
        )

        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ORDER] Order {order.reference} {previous_status} -> {status} by {actor_kind} {actor_id}")
    _count_transition(status)
    if notify:
        _notify_status_change(order)
    return order


def get_order(session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f'Order {order_id} not found')
    return order


def get_order_history(session, order_id: int) -> List[OrderStatusHistory]:
    """History rows in the order they were written."""
    get_order(session, order_id)
    return session.query(OrderStatusHistory).filter(
        OrderStatusHistory.order_id == order_id
    ).order_by(OrderStatusHistory.id.asc()).all()


def _count_transition(status: str) -> None:
    try:
        from jewelry.blueprints.metrics import count_order_transition
        count_order_transition(status)
    except Exception as e:
        logger.warning(f"[ORDER] Failed to record transition metric: {e}")


def _notify_status_change(order: Order) -> None:
    """Best-effort customer email; never fails the transition."""
    try:
        from jewelry.services.email_service import send_order_status_changed
        customer = order.customer
        if customer is None:
            return
        send_order_status_changed(customer.email, customer.name, order.reference, order.status)
    except Exception as e:
        logger.error(f"[ORDER] Status notification failed for order {order.id}: {e}")
