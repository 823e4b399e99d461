from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from labo.core.logging_setup import logger
from labo.models.billing import PaymentIntent, PaymentStatus, Subscription
from labo.services.exceptions import BillingValidationError
from labo.services.payments import PaymentService
from labo.services.vnpay import SUCCESS_RESPONSE_CODE, VNPayGateway


class ReturnOutcome(str, Enum):
    SUCCESS = "success"
    INVALID = "invalid"
    NOT_FOUND = "notfound"
    FAILED = "failed"


@dataclass
class GatewayReturnResult:
    outcome: ReturnOutcome
    payment: PaymentIntent | None = None
    subscription: Subscription | None = None

    def redirect_url(self, base: str) -> str:
        if self.outcome == ReturnOutcome.SUCCESS:
            return f"{base}?success=true"
        return f"{base}?error={self.outcome.value}"


class GatewayReturnHandler:
    def __init__(self, session: Session, gateway: VNPayGateway | None = None) -> None:
        self.session = session
        self.gateway = gateway or VNPayGateway.from_settings()
        self.payments = PaymentService(session)

    def handle(self, query: Mapping[str, str]) -> GatewayReturnResult:
        params = dict(query)
        parsed = self.gateway.parse_return(params)

        # Forged or tampered callbacks never reach the datastore.
        if not parsed.is_valid:
            logger.warning("Rejected VNPay callback with invalid signature (ref=%r)", parsed.txn_ref)
            return GatewayReturnResult(ReturnOutcome.INVALID)

        intent = self.payments.get_by_reference(parsed.txn_ref)
        if not intent:
            logger.warning("VNPay callback for unknown transaction ref=%r", parsed.txn_ref)
            return GatewayReturnResult(ReturnOutcome.NOT_FOUND)

        succeeded = parsed.response_code == SUCCESS_RESPONSE_CODE
        if succeeded and parsed.amount is not None and parsed.amount != intent.amount:
            logger.warning(
                "VNPay callback amount %s does not match payment %s amount %s",
                parsed.amount,
                intent.transaction_id,
                intent.amount,
            )
            succeeded = False

        outcome = PaymentStatus.SUCCESS if succeeded else PaymentStatus.FAILED
        try:
            settlement = self.payments.settle(intent, outcome, params)
        except (SQLAlchemyError, BillingValidationError, LookupError, ValueError):
            logger.exception("Could not settle payment %s from VNPay callback", parsed.txn_ref)
            return GatewayReturnResult(ReturnOutcome.FAILED, payment=intent)

        if not settlement.changed:
            logger.info("Duplicate VNPay callback for %s (status=%s)", intent.transaction_id, intent.status.value)

        final = settlement.payment
        if final.status == PaymentStatus.SUCCESS:
            return GatewayReturnResult(ReturnOutcome.SUCCESS, payment=final, subscription=settlement.subscription)
        return GatewayReturnResult(ReturnOutcome.FAILED, payment=final)
