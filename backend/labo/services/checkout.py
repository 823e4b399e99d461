from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote
from uuid import UUID

from sqlmodel import Session

from labo.core.config import settings
from labo.core.logging_setup import logger
from labo.models.billing import BillingInterval, PaymentIntent, PaymentMethod, SubscriptionPlan
from labo.services.billing import BillingService
from labo.services.exceptions import BillingValidationError, CheckoutRateLimited
from labo.services.payments import PaymentService, new_transfer_note
from labo.services.rate_limit import CheckoutRateLimiter, checkout_rate_limiter
from labo.services.vnpay import VNPayGateway


@dataclass
class CheckoutResult:
    payment_url: str
    payment: PaymentIntent


@dataclass
class BankTransferInstructions:
    payment: PaymentIntent
    plan: SubscriptionPlan
    bank_name: str | None
    bank_account_no: str | None
    bank_account_holder: str | None
    qr_image_url: str | None


class CheckoutService:
    """Turns a plan choice into a pending payment intent.

    Never touches subscriptions; activation only happens once the payment
    is settled by the gateway return handler or an administrator.
    """

    def __init__(
        self,
        session: Session,
        gateway: VNPayGateway | None = None,
        rate_limiter: CheckoutRateLimiter | None = None,
    ) -> None:
        self.session = session
        self.gateway = gateway or VNPayGateway.from_settings()
        self.rate_limiter = rate_limiter or checkout_rate_limiter
        self.payments = PaymentService(session)

    def _throttle(self, factory_id: UUID) -> None:
        if not self.rate_limiter.hit(factory_id):
            logger.warning("Checkout rate limit exceeded for factory=%s", factory_id)
            raise CheckoutRateLimited("Too many checkout attempts, try again later")

    def _price(self, plan_id: UUID, interval: BillingInterval | str, client_amount: int | None) -> tuple[SubscriptionPlan, BillingInterval, int]:
        try:
            interval = BillingInterval(interval)
        except ValueError as exc:
            raise BillingValidationError(f"Unsupported billing interval: {interval}") from exc
        plan = BillingService(self.session).get_plan(plan_id)
        if not plan or not plan.is_active:
            raise BillingValidationError("Plan not available")
        amount = plan.price_for(interval)
        if amount <= 0:
            raise BillingValidationError("Plan cannot be purchased")
        # The price is authoritative; a client figure is only cross-checked.
        if client_amount is not None and client_amount != amount:
            raise BillingValidationError("Amount does not match the plan price")
        return plan, interval, amount

    def start_gateway_checkout(
        self,
        factory_id: UUID,
        plan_id: UUID,
        interval: BillingInterval | str,
        amount: int | None = None,
        client_ip: str | None = None,
    ) -> CheckoutResult:
        self._throttle(factory_id)
        plan, interval, price = self._price(plan_id, interval, amount)
        intent = self.payments.create(factory_id, price, PaymentMethod.GATEWAY, plan.id, interval)
        payment_url = self.gateway.build_payment_url(
            order_reference=intent.transaction_id,
            amount=intent.amount,
            order_info=f"Labo - Goi {plan.name} ({interval.value})",
            ip_addr=client_ip or "127.0.0.1",
            created_at=intent.created_at,
        )
        logger.info("Checkout started for factory=%s ref=%s", factory_id, intent.transaction_id)
        return CheckoutResult(payment_url=payment_url, payment=intent)

    def start_bank_transfer(
        self,
        factory_id: UUID,
        plan_id: UUID,
        interval: BillingInterval | str,
        amount: int | None = None,
    ) -> BankTransferInstructions:
        self._throttle(factory_id)
        plan, interval, price = self._price(plan_id, interval, amount)
        note = new_transfer_note()
        intent = self.payments.create(
            factory_id,
            price,
            PaymentMethod.BANK_TRANSFER,
            plan.id,
            interval,
            transfer_note=note,
        )
        return BankTransferInstructions(
            payment=intent,
            plan=plan,
            bank_name=settings.bank_name,
            bank_account_no=settings.bank_account_no,
            bank_account_holder=settings.bank_account_holder,
            qr_image_url=_vietqr_url(price, note),
        )


def _vietqr_url(amount: int, transfer_note: str) -> str | None:
    if not settings.bank_bin or not settings.bank_account_no:
        return None
    base = settings.vietqr_image_base_url.rstrip("/")
    holder = quote(settings.bank_account_holder or "")
    return (
        f"{base}/{settings.bank_bin}-{settings.bank_account_no}-compact.png"
        f"?amount={amount}&addInfo={quote(transfer_note)}&accountName={holder}"
    )
