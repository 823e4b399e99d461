from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Mapping

from labo.core.config import settings
from labo.utils.signature import attach_signature, form_urlencode, verify

SUCCESS_RESPONSE_CODE = "00"


@dataclass
class GatewayReturn:
    is_valid: bool
    response_code: str
    txn_ref: str
    amount: int | None


class VNPayGateway:
    name = "vnpay"

    def __init__(
        self,
        tmn_code: str,
        hash_secret: str,
        url: str,
        return_url: str,
        *,
        version: str = "2.1.0",
        locale: str = "vn",
        currency: str = "VND",
        order_type: str = "subscription",
        utc_offset_hours: int = 7,
    ) -> None:
        self.tmn_code = tmn_code
        self.hash_secret = hash_secret
        self.url = url
        self.return_url = return_url
        self.version = version
        self.locale = locale
        self.currency = currency
        self.order_type = order_type
        self.tz = timezone(timedelta(hours=utc_offset_hours))

    @classmethod
    def from_settings(cls) -> "VNPayGateway":
        return cls(
            settings.vnpay_tmn_code,
            settings.vnpay_hash_secret,
            settings.vnpay_url,
            settings.vnpay_return_url,
            version=settings.vnpay_version,
            locale=settings.vnpay_locale,
            currency=settings.vnpay_currency,
            order_type=settings.vnpay_order_type,
            utc_offset_hours=settings.vnpay_utc_offset_hours,
        )

    def format_create_date(self, created_at: datetime | None = None) -> str:
        moment = created_at or datetime.now(timezone.utc)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz).strftime("%Y%m%d%H%M%S")

    def build_payment_params(
        self,
        *,
        order_reference: str,
        amount: int,
        order_info: str,
        ip_addr: str,
        locale: str | None = None,
        created_at: datetime | None = None,
    ) -> dict[str, str]:
        params = {
            "vnp_Version": self.version,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.tmn_code,
            "vnp_Locale": locale or self.locale,
            "vnp_CurrCode": self.currency,
            "vnp_TxnRef": order_reference,
            "vnp_OrderInfo": order_info,
            "vnp_OrderType": self.order_type,
            # VNPay expects the amount multiplied by 100.
            "vnp_Amount": str(amount * 100),
            "vnp_ReturnUrl": self.return_url,
            "vnp_IpAddr": ip_addr,
            "vnp_CreateDate": self.format_create_date(created_at),
        }
        return attach_signature(params, self.hash_secret)

    def build_payment_url(self, **kwargs) -> str:
        return f"{self.url}?{form_urlencode(self.build_payment_params(**kwargs))}"

    def parse_return(self, query: Mapping[str, str]) -> GatewayReturn:
        raw_amount = query.get("vnp_Amount") or ""
        return GatewayReturn(
            is_valid=verify(query, self.hash_secret),
            response_code=query.get("vnp_ResponseCode") or "",
            txn_ref=query.get("vnp_TxnRef") or "",
            amount=int(raw_amount) // 100 if raw_amount.isdigit() else None,
        )
