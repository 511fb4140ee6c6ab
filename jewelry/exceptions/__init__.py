"""Custom exceptions for the jewelry backend."""

class JewelryError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BadRequestError(JewelryError):
    """Raised for illegal state transitions and invalid input."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(JewelryError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InsufficientInventoryError(BadRequestError):
    """Raised when a variant does not hold enough pieces for a request."""
    def __init__(self, label, requested, available):
        message = f"Insufficient inventory for {label}: requested {requested}, available {available}"
        super().__init__(message, status_code=409, payload={'requested': requested, 'available': available})

class ConversionConflictError(BadRequestError):
    """Raised when another conversion already claimed the quotation group."""
    def __init__(self, quotation_group_id):
        message = f"Quotation group {quotation_group_id} has already been converted to an order"
        super().__init__(message, status_code=409, payload={'quotation_group_id': quotation_group_id})

class PaymentFailedError(BadRequestError):
    """Raised when the gateway reports that an order's payment did not go through."""
    def __init__(self, order_reference, gateway_status):
        message = f"Payment for order {order_reference} has not succeeded"
        super().__init__(message, status_code=402, payload={'order_reference': order_reference, 'gateway_status': gateway_status})

class PaymentGatewayError(JewelryError):
    """Raised by payment drivers when the gateway cannot be reached or refuses a request."""
    def __init__(self, message, payload=None):
        super().__init__(message, 502, payload)
