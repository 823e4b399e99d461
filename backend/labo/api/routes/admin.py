from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from labo.api.deps import get_db, require_roles
from labo.models.billing import PaymentMethod, PaymentStatus
from labo.models.user import User, UserRole
from labo.schemas.billing import (
    PaymentDecisionRequest,
    PaymentDecisionResponse,
    PaymentRead,
    PlanRead,
    SubscriptionRead,
)
from labo.services.billing import BillingService
from labo.services.exceptions import BillingValidationError, PaymentNotFound
from labo.services.payments import PaymentService, SettlementResult
from labo.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_roles(UserRole.ADMIN)


def _decision_response(result: SettlementResult) -> PaymentDecisionResponse:
    return PaymentDecisionResponse(
        payment=PaymentRead.model_validate(result.payment),
        subscription=SubscriptionRead.model_validate(result.subscription) if result.subscription else None,
        changed=result.changed,
    )


@router.get("/payments", response_model=List[PaymentRead])
def list_payments(
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    method: PaymentMethod | None = None,
    session: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
) -> List[PaymentRead]:
    payments = PaymentService(session).list_payments(status=status_filter, method=method)
    return [PaymentRead.model_validate(payment) for payment in payments]


@router.get("/payments/pending-transfers", response_model=List[PaymentRead])
def list_pending_transfers(
    session: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
) -> List[PaymentRead]:
    return [PaymentRead.model_validate(p) for p in ReconciliationService(session).list_pending()]


@router.post("/payments/confirm", response_model=PaymentDecisionResponse)
def confirm_payment(
    payload: PaymentDecisionRequest,
    session: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
) -> PaymentDecisionResponse:
    try:
        result = ReconciliationService(session).confirm(payload.payment_id, current_user.id)
    except PaymentNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found") from exc
    except BillingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _decision_response(result)


@router.post("/payments/reject", response_model=PaymentDecisionResponse)
def reject_payment(
    payload: PaymentDecisionRequest,
    session: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
) -> PaymentDecisionResponse:
    try:
        result = ReconciliationService(session).reject(payload.payment_id, current_user.id)
    except PaymentNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found") from exc
    except BillingValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _decision_response(result)


@router.post("/plans/seed", response_model=List[PlanRead], status_code=status.HTTP_201_CREATED)
def seed_default_plans(
    session: Session = Depends(get_db),
    current_user: User = Depends(admin_only),
) -> List[PlanRead]:
    plans = BillingService(session).ensure_default_plans()
    return [PlanRead.model_validate(plan) for plan in plans]
