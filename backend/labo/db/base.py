# noqa: F401 to ensure models are imported for metadata
from labo.models.billing import PaymentIntent, Subscription, SubscriptionPlan
from labo.models.user import User

__all__ = [
    "PaymentIntent",
    "Subscription",
    "SubscriptionPlan",
    "User",
]
