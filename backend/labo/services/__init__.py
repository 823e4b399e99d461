from labo.services.auth import AuthService
from labo.services.billing import BillingService
from labo.services.checkout import CheckoutService
from labo.services.gateway_return import GatewayReturnHandler
from labo.services.payments import PaymentService
from labo.services.reconciliation import ReconciliationService
from labo.services.subscriptions import SubscriptionActivator

__all__ = [
    "AuthService",
    "BillingService",
    "CheckoutService",
    "GatewayReturnHandler",
    "PaymentService",
    "ReconciliationService",
    "SubscriptionActivator",
]
