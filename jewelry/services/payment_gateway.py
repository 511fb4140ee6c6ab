"""
Payment gateway drivers used by checkout.

Checkout only talks to the PaymentDriver interface; the wire protocol of a
concrete gateway stays inside its driver. Drivers are looked up by name from
PAYMENT_DRIVER.
"""
import logging
import uuid
from typing import Any, Dict, Optional

from flask import current_app, has_app_context

from jewelry.exceptions import PaymentGatewayError
from jewelry.utils.money import money

logger = logging.getLogger(__name__)

# Gateway intent statuses that settle an order's payment
SETTLED_INTENT_STATUSES = ('succeeded', 'requires_capture')


class PaymentDriver:
    """
    Contract of a gateway driver.

    ensure_intent() returns {provider_reference, client_secret, amount, currency};
    retrieve_intent() returns a JSON-serializable dict with at least {status};
    it is stored on the payment as-is.
    """

    name = None

    def ensure_intent(self, order, payment=None) -> Dict[str, Any]:
        """Create an intent for `order`, or update the one `payment` already holds."""
        raise NotImplementedError

    def retrieve_intent(self, provider_reference: str) -> Dict[str, Any]:
        raise NotImplementedError

    def publishable_key(self) -> Optional[str]:
        return None


class ManualPaymentDriver(PaymentDriver):
    """
    Offline settlement (bank transfer, payment at the showroom).

    Intents are authorized as soon as checkout is finalized; staff move the
    order to paid through the order workflow once the money arrives.
    """

    name = 'manual'

    def ensure_intent(self, order, payment=None) -> Dict[str, Any]:
        if payment is not None and payment.provider_reference:
            reference = payment.provider_reference
        else:
            reference = f"MANUAL-{uuid.uuid4().hex[:16].upper()}"
        return {
            'provider_reference': reference,
            'client_secret': None,
            'amount': money(order.total_amount),
            'currency': order.currency,
        }

    def retrieve_intent(self, provider_reference: str) -> Dict[str, Any]:
        return {'status': 'requires_capture', 'settlement': 'offline'}

    def publishable_key(self) -> Optional[str]:
        if has_app_context():
            return current_app.config.get('PAYMENT_PUBLISHABLE_KEY') or None
        return None


_drivers = {
    ManualPaymentDriver.name: ManualPaymentDriver,
}


def register_driver(driver_class) -> None:
    """Make a driver class available under its `name`."""
    if not driver_class.name:
        raise ValueError('Payment drivers must declare a name')
    _drivers[driver_class.name] = driver_class


def get_driver(name: Optional[str] = None) -> PaymentDriver:
    """Driver instance for `name`, defaulting to the configured PAYMENT_DRIVER."""
    if name is None:
        name = current_app.config.get('PAYMENT_DRIVER', 'manual') if has_app_context() else 'manual'
    driver_class = _drivers.get(name)
    if driver_class is None:
        logger.error(f"[PAYMENT] Unknown payment driver: {name}")
        raise PaymentGatewayError(f'Payment driver {name} is not available')
    return driver_class()
