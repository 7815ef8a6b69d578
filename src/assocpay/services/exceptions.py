# src/assocpay/services/exceptions.py

class ServiceException(Exception):
    """Base exception for all service layer errors."""
    code: str = "SERVICE_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

class PlanNotFound(ServiceException):
    """Raised when a pricing plan does not exist or is no longer active."""
    code = "PRICING_PLAN_NOT_FOUND"
    status_code = 404

class AlreadyActiveMember(ServiceException):
    """Raised when a purchase is started while an ACTIVE membership is already in force."""
    code = "ALREADY_ACTIVE_MEMBER"
    status_code = 400

class OrderNotFound(ServiceException):
    code = "PURCHASE_ORDER_NOT_FOUND"
    status_code = 404

class OrderMissingSession(ServiceException):
    """Raised when an order has no checkout session to query."""
    code = "ORDER_MISSING_SESSION"
    status_code = 409

class WebhookSignatureError(ServiceException):
    code = "WEBHOOK_SIGNATURE_VERIFICATION_FAILED"
    status_code = 400

class PaymentGatewayError(ServiceException):
    """Raised when the payment gateway fails or times out."""
    code = "PAYMENT_GATEWAY_ERROR"
    status_code = 502

class PermissionDeniedError(ServiceException):
    code = "PERMISSION_DENIED"
    status_code = 403

class NotFoundError(ServiceException):
    code = "NOT_FOUND"
    status_code = 404

class ConfigurationError(ServiceException):
    """Raised if a required system configuration (e.g., a gateway secret) is missing."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
