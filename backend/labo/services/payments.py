from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from labo.core.config import settings
from labo.core.logging_setup import logger
from labo.models.base import utcnow
from labo.models.billing import (
    BillingInterval,
    PaymentIntent,
    PaymentMethod,
    PaymentStatus,
    Subscription,
)
from labo.services.exceptions import BillingValidationError, PaymentNotFound
from labo.services.subscriptions import SubscriptionActivator, factory_lock

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def new_order_reference() -> str:
    return f"VN{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


def new_transfer_note() -> str:
    value = int(time.time() * 1000)
    digits = ""
    while value:
        value, rem = divmod(value, 36)
        digits = _BASE36[rem] + digits
    return f"{settings.bank_transfer_note_prefix}-{digits or '0'}"


@dataclass
class SettlementResult:
    payment: PaymentIntent
    subscription: Subscription | None
    changed: bool


class PaymentService:
    """Payment intent store. The only writer of ``payments`` rows."""

    max_reference_attempts = 3

    def __init__(self, session: Session, activator: SubscriptionActivator | None = None) -> None:
        self.session = session
        self.activator = activator or SubscriptionActivator(session)

    def create(
        self,
        factory_id: UUID,
        amount: int,
        method: PaymentMethod | str,
        plan_id: UUID,
        interval: BillingInterval | str,
        transfer_note: str | None = None,
    ) -> PaymentIntent:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise BillingValidationError("Amount must be an integer")
        if amount <= 0 or amount > settings.billing_max_amount:
            raise BillingValidationError(f"Amount must be between 1 and {settings.billing_max_amount}")
        try:
            method = PaymentMethod(method)
            interval = BillingInterval(interval)
        except ValueError as exc:
            raise BillingValidationError(str(exc)) from exc
        if transfer_note and method != PaymentMethod.BANK_TRANSFER:
            raise BillingValidationError("Transfer note is only accepted for bank transfers")

        for attempt in range(1, self.max_reference_attempts + 1):
            intent = PaymentIntent(
                factory_id=factory_id,
                transaction_id=new_order_reference(),
                amount=amount,
                method=method,
                transfer_note=transfer_note,
                status=PaymentStatus.PENDING,
                intent_payload={"plan_id": str(plan_id), "interval": interval.value},
            )
            self.session.add(intent)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.warning("Order reference collision on attempt %d, regenerating", attempt)
                continue
            self.session.refresh(intent)
            logger.info(
                "Payment intent %s created ref=%s factory=%s method=%s amount=%d",
                intent.id,
                intent.transaction_id,
                factory_id,
                method.value,
                amount,
            )
            return intent
        raise RuntimeError("Could not allocate a unique order reference")

    def get(self, payment_id: UUID) -> PaymentIntent | None:
        return self.session.get(PaymentIntent, payment_id)

    def get_by_reference(self, order_reference: str) -> PaymentIntent | None:
        return self.session.exec(
            select(PaymentIntent)
            .where(PaymentIntent.transaction_id == order_reference)
            .execution_options(populate_existing=True)
        ).first()

    def list_payments(
        self,
        status: PaymentStatus | None = None,
        method: PaymentMethod | None = None,
    ) -> Iterable[PaymentIntent]:
        query = select(PaymentIntent)
        if status:
            query = query.where(PaymentIntent.status == status)
        if method:
            query = query.where(PaymentIntent.method == method)
        return self.session.exec(query.order_by(PaymentIntent.created_at.desc())).all()

    def list_for_factory(self, factory_id: UUID) -> Iterable[PaymentIntent]:
        return self.session.exec(
            select(PaymentIntent)
            .where(PaymentIntent.factory_id == factory_id)
            .order_by(PaymentIntent.created_at.desc())
        ).all()

    def resolve(
        self,
        order_reference: str,
        outcome: PaymentStatus | str,
        raw_response: Mapping[str, Any] | None = None,
        *,
        resolved_by: UUID | None = None,
        commit: bool = True,
    ) -> PaymentIntent:
        """Move a pending intent to success/failed.

        Resolving an intent that is no longer pending returns it unchanged, so
        duplicate gateway callbacks and double admin clicks are harmless.
        """
        outcome = PaymentStatus(outcome)
        if outcome == PaymentStatus.PENDING:
            raise BillingValidationError("A payment can only be resolved to success or failed")

        intent = self.get_by_reference(order_reference)
        if not intent:
            raise PaymentNotFound(order_reference)
        if intent.status != PaymentStatus.PENDING:
            logger.info(
                "Payment %s already %s; ignoring %s resolution",
                intent.transaction_id,
                intent.status.value,
                outcome.value,
            )
            return intent

        now = utcnow()
        intent.status = outcome
        intent.gateway_response = dict(raw_response) if raw_response is not None else None
        intent.resolved_at = now
        intent.resolved_by = resolved_by
        intent.updated_at = now
        self.session.add(intent)
        self.session.flush()
        if commit:
            self.session.commit()
            self.session.refresh(intent)
        logger.info("Payment %s resolved as %s", intent.transaction_id, outcome.value)
        return intent

    def _lock_for_settlement(self, payment_id: UUID) -> PaymentIntent:
        # Row lock so a second worker waits here and then sees the final status.
        return self.session.exec(
            select(PaymentIntent)
            .where(PaymentIntent.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one()

    def settle(
        self,
        intent: PaymentIntent,
        outcome: PaymentStatus | str,
        raw_response: Mapping[str, Any] | None = None,
        *,
        resolved_by: UUID | None = None,
    ) -> SettlementResult:
        """Resolve the intent and, on success, activate the term it paid for.

        One transaction under the factory lock and the payment row lock:
        either the payment is marked and the subscription swapped, or
        nothing changes.
        """
        reference = intent.transaction_id
        with factory_lock(intent.factory_id):
            intent = self._lock_for_settlement(intent.id)
            if intent.status != PaymentStatus.PENDING:
                # Nothing to write; end the transaction to release the row lock.
                self.session.commit()
                return SettlementResult(payment=intent, subscription=None, changed=False)
            try:
                resolved = self.resolve(
                    reference,
                    outcome,
                    raw_response,
                    resolved_by=resolved_by,
                    commit=False,
                )
                subscription = None
                if resolved.status == PaymentStatus.SUCCESS:
                    subscription = self.activator.activate(
                        resolved.factory_id,
                        resolved.plan_id,
                        resolved.interval,
                        payment_id=resolved.id,
                        commit=False,
                    )
                self.session.commit()
            except Exception:
                self.session.rollback()
                logger.exception("Settlement of payment %s rolled back", reference)
                raise
            self.session.refresh(resolved)
            if subscription is not None:
                self.session.refresh(subscription)
        return SettlementResult(payment=resolved, subscription=subscription, changed=True)
