from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index
from sqlmodel import Field

from labo.models.base import TimestampedModel, UUIDModel


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentMethod(str, Enum):
    GATEWAY = "gateway"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


CURRENT_TERM_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVE)


class SubscriptionPlan(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscription_plans"

    slug: str = Field(unique=True, index=True)
    name: str
    price_monthly: int
    price_yearly: int
    max_job_posts: int = Field(default=-1)
    max_view_profiles: int = Field(default=-1)
    radius_km: int = Field(default=5)
    features: dict | None = Field(default_factory=dict, sa_type=JSON)
    is_active: bool = Field(default=True)
    sort_order: int = Field(default=0)

    def price_for(self, interval: BillingInterval) -> int:
        if interval == BillingInterval.YEARLY:
            return self.price_yearly
        return self.price_monthly


class Subscription(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscriptions"
    __table_args__ = (Index("ix_subscriptions_factory_status", "factory_id", "status"),)

    factory_id: UUID = Field(foreign_key="users.id", index=True)
    plan_id: UUID = Field(foreign_key="subscription_plans.id")
    payment_id: UUID | None = Field(default=None, foreign_key="payments.id")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    start_date: datetime
    end_date: datetime
    trial_ends_at: datetime | None = Field(default=None)


class PaymentIntent(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "payments"

    factory_id: UUID = Field(foreign_key="users.id", index=True)
    transaction_id: str = Field(unique=True, index=True, max_length=64)
    amount: int
    method: PaymentMethod
    transfer_note: str | None = Field(default=None, max_length=64)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)
    # Target plan and interval for the term this payment buys.
    intent_payload: dict = Field(default_factory=dict, sa_type=JSON)
    # Raw gateway callback (or admin decision) kept for audit.
    gateway_response: dict | None = Field(default=None, sa_type=JSON)
    resolved_at: datetime | None = Field(default=None)
    resolved_by: UUID | None = Field(default=None, foreign_key="users.id")

    @property
    def plan_id(self) -> UUID:
        return UUID(str(self.intent_payload["plan_id"]))

    @property
    def interval(self) -> BillingInterval:
        return BillingInterval(self.intent_payload.get("interval") or BillingInterval.MONTHLY.value)
