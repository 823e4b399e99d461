from __future__ import annotations

from uuid import UUID

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from labo.core.config import settings


class CheckoutRateLimiter:
    """Moving-window limit on checkout attempts, keyed by factory id."""

    namespace = "checkout"

    def __init__(self, limit: str | None = None, storage_uri: str | None = None) -> None:
        self.item = parse(limit or settings.checkout_rate_limit)
        self.storage = storage_from_string(storage_uri or settings.rate_limit_storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)

    def hit(self, factory_id: UUID) -> bool:
        return self.strategy.hit(self.item, self.namespace, str(factory_id))

    def reset(self) -> None:
        self.storage.reset()


checkout_rate_limiter = CheckoutRateLimiter()
