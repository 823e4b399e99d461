from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from labo.api.deps import get_db, require_roles
from labo.core.config import settings
from labo.models.user import User, UserRole
from labo.schemas.billing import (
    BankTransferRequest,
    BankTransferResponse,
    CheckoutRequest,
    CheckoutResponse,
    CurrentSubscriptionRead,
    EntitlementsRead,
    PaymentRead,
    PlanRead,
    SubscriptionRead,
)
from labo.services import quota
from labo.services.billing import BillingService
from labo.services.checkout import CheckoutService
from labo.services.exceptions import BillingValidationError, CheckoutRateLimited
from labo.services.gateway_return import GatewayReturnHandler
from labo.services.payments import PaymentService
from labo.services.subscriptions import SubscriptionActivator

router = APIRouter(prefix="/billing", tags=["billing"])

factory_only = require_roles(UserRole.FACTORY)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


@router.get("/plans", response_model=List[PlanRead])
def list_plans(session: Session = Depends(get_db)) -> List[PlanRead]:
    service = BillingService(session)
    plans = service.list_active_plans()
    if not plans:
        plans = service.ensure_default_plans()
    return [PlanRead.model_validate(plan) for plan in plans]


@router.post("/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
def checkout(
    payload: CheckoutRequest,
    request: Request,
    session: Session = Depends(get_db),
    current_user: User = Depends(factory_only),
) -> CheckoutResponse:
    service = CheckoutService(session)
    try:
        result = service.start_gateway_checkout(
            current_user.id,
            payload.plan_id,
            payload.interval,
            amount=payload.amount,
            client_ip=_client_ip(request),
        )
    except CheckoutRateLimited as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    except BillingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CheckoutResponse(payment_url=result.payment_url, payment_id=result.payment.id)


@router.post("/bank-transfer", response_model=BankTransferResponse, status_code=status.HTTP_201_CREATED)
def bank_transfer(
    payload: BankTransferRequest,
    session: Session = Depends(get_db),
    current_user: User = Depends(factory_only),
) -> BankTransferResponse:
    service = CheckoutService(session)
    try:
        result = service.start_bank_transfer(current_user.id, payload.plan_id, payload.interval, amount=payload.amount)
    except CheckoutRateLimited as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    except BillingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return BankTransferResponse(
        payment_id=result.payment.id,
        transaction_id=result.payment.transaction_id,
        amount=result.payment.amount,
        transfer_note=result.payment.transfer_note,
        plan_name=result.plan.name,
        interval=result.payment.interval,
        bank_name=result.bank_name,
        bank_account_no=result.bank_account_no,
        bank_account_holder=result.bank_account_holder,
        qr_image_url=result.qr_image_url,
    )


@router.get("/vnpay-return", include_in_schema=False)
def vnpay_return(request: Request, session: Session = Depends(get_db)) -> RedirectResponse:
    """Browser redirect target after the VNPay payment page."""
    result = GatewayReturnHandler(session).handle(dict(request.query_params))
    return RedirectResponse(
        url=result.redirect_url(settings.subscription_redirect_base()),
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/subscription", response_model=CurrentSubscriptionRead)
def get_subscription(
    session: Session = Depends(get_db),
    current_user: User = Depends(factory_only),
) -> CurrentSubscriptionRead:
    subscription = SubscriptionActivator(session).get_current(current_user.id)
    plan = BillingService(session).get_plan(subscription.plan_id) if subscription else None
    return CurrentSubscriptionRead(
        subscription=SubscriptionRead.model_validate(subscription) if subscription else None,
        plan=PlanRead.model_validate(plan) if plan else None,
        is_active=quota.is_active(subscription),
        trial_days_left=quota.trial_days_left(subscription),
        max_search_radius_km=quota.max_search_radius(plan),
    )


@router.get("/payments", response_model=List[PaymentRead])
def list_my_payments(
    session: Session = Depends(get_db),
    current_user: User = Depends(factory_only),
) -> List[PaymentRead]:
    payments = PaymentService(session).list_for_factory(current_user.id)
    return [PaymentRead.model_validate(payment) for payment in payments]


@router.get("/entitlements", response_model=EntitlementsRead)
def get_entitlements(
    job_count: int = Query(default=0, ge=0),
    viewed_count: int = Query(default=0, ge=0),
    session: Session = Depends(get_db),
    current_user: User = Depends(factory_only),
) -> EntitlementsRead:
    subscription = SubscriptionActivator(session).get_current(current_user.id)
    plan = BillingService(session).get_plan(subscription.plan_id) if subscription else None
    return EntitlementsRead.model_validate(quota.entitlements(subscription, plan, job_count, viewed_count))
