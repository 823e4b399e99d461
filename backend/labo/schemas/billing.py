from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from labo.models.billing import BillingInterval, PaymentMethod, PaymentStatus, SubscriptionStatus
from labo.schemas.common import StoredRecordRead


class PlanRead(StoredRecordRead):
    slug: str
    name: str
    price_monthly: int
    price_yearly: int
    max_job_posts: int
    max_view_profiles: int
    radius_km: int
    features: dict | None = None
    is_active: bool
    sort_order: int


class SubscriptionRead(StoredRecordRead):
    factory_id: UUID
    plan_id: UUID
    payment_id: UUID | None = None
    status: SubscriptionStatus
    start_date: datetime
    end_date: datetime
    trial_ends_at: datetime | None = None


class CurrentSubscriptionRead(BaseModel):
    subscription: SubscriptionRead | None
    plan: PlanRead | None
    is_active: bool
    trial_days_left: int
    max_search_radius_km: int


class PaymentRead(StoredRecordRead):
    factory_id: UUID
    transaction_id: str
    amount: int
    method: PaymentMethod
    transfer_note: str | None = None
    status: PaymentStatus
    intent_payload: dict
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None


class CheckoutRequest(BaseModel):
    plan_id: UUID
    interval: BillingInterval = BillingInterval.MONTHLY
    amount: int | None = Field(default=None, gt=0, le=100_000_000)


class CheckoutResponse(BaseModel):
    payment_url: str
    payment_id: UUID


class BankTransferRequest(BaseModel):
    plan_id: UUID
    interval: BillingInterval = BillingInterval.MONTHLY
    amount: int | None = Field(default=None, gt=0, le=100_000_000)


class BankTransferResponse(BaseModel):
    payment_id: UUID
    transaction_id: str
    amount: int
    transfer_note: str
    plan_name: str
    interval: BillingInterval
    bank_name: str | None = None
    bank_account_no: str | None = None
    bank_account_holder: str | None = None
    qr_image_url: str | None = None


class EntitlementsRead(BaseModel):
    is_active: bool
    can_post_job: bool
    can_view_profile: bool
    trial_days_left: int
    max_job_posts: int
    max_view_profiles: int
    max_search_radius_km: int
    job_count: int
    viewed_count: int


class PaymentDecisionRequest(BaseModel):
    payment_id: UUID


class PaymentDecisionResponse(BaseModel):
    payment: PaymentRead
    subscription: SubscriptionRead | None = None
    changed: bool
