class BillingValidationError(ValueError):
    """Rejected billing input (amount, interval, plan or payment method)."""


class PaymentNotFound(LookupError):
    pass


class CheckoutRateLimited(Exception):
    pass
