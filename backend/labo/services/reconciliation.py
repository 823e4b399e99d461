from __future__ import annotations

from typing import Iterable
from uuid import UUID

from sqlmodel import Session, select

from labo.core.logging_setup import logger
from labo.models.billing import PaymentIntent, PaymentMethod, PaymentStatus
from labo.services.exceptions import BillingValidationError, PaymentNotFound
from labo.services.payments import PaymentService, SettlementResult


class ReconciliationService:
    """Admin confirmation of bank-transfer payments."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.payments = PaymentService(session)

    def list_pending(self) -> Iterable[PaymentIntent]:
        return self.session.exec(
            select(PaymentIntent)
            .where(PaymentIntent.method == PaymentMethod.BANK_TRANSFER)
            .where(PaymentIntent.status == PaymentStatus.PENDING)
            .order_by(PaymentIntent.created_at)
        ).all()

    def _load_transfer(self, payment_id: UUID) -> PaymentIntent:
        intent = self.payments.get(payment_id)
        if not intent:
            raise PaymentNotFound(str(payment_id))
        if intent.method != PaymentMethod.BANK_TRANSFER:
            raise BillingValidationError("Only bank-transfer payments are reconciled manually")
        return intent

    def confirm(self, payment_id: UUID, admin_id: UUID) -> SettlementResult:
        intent = self._load_transfer(payment_id)
        result = self.payments.settle(
            intent,
            PaymentStatus.SUCCESS,
            {"decision": "confirmed", "admin_id": str(admin_id)},
            resolved_by=admin_id,
        )
        if result.changed:
            logger.info("Admin %s confirmed bank transfer %s", admin_id, intent.transaction_id)
        else:
            logger.info("Admin %s confirm on %s ignored (already %s)", admin_id, intent.transaction_id, result.payment.status.value)
        return result

    def reject(self, payment_id: UUID, admin_id: UUID) -> SettlementResult:
        intent = self._load_transfer(payment_id)
        result = self.payments.settle(
            intent,
            PaymentStatus.FAILED,
            {"decision": "rejected", "admin_id": str(admin_id)},
            resolved_by=admin_id,
        )
        if result.changed:
            logger.info("Admin %s rejected bank transfer %s", admin_id, intent.transaction_id)
        return result
