"""Canonical signing of gateway parameter sets.

VNPay signs both the outbound payment request and the inbound return
callback the same way: every ``vnp_*`` field except the hash fields, sorted
by key, form-urlencoded and joined with ``&``, then HMAC-SHA512 with the
merchant secret, hex encoded.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Mapping
from urllib.parse import quote_plus, urlencode

SECURE_HASH_FIELD = "vnp_SecureHash"
SECURE_HASH_TYPE_FIELD = "vnp_SecureHashType"
HASH_FIELDS = frozenset({SECURE_HASH_FIELD, SECURE_HASH_TYPE_FIELD})


def _form_quote(value: str, safe: str = "", encoding: str | None = None, errors: str | None = None) -> str:
    # application/x-www-form-urlencoded as browsers emit it: "*" stays literal, "~" is escaped.
    return quote_plus(value, safe="*", encoding=encoding, errors=errors).replace("~", "%7E")


def form_urlencode(items: Mapping[str, object] | list[tuple[str, str]]) -> str:
    return urlencode(items, quote_via=_form_quote)


def _signable_items(params: Mapping[str, object]) -> list[tuple[str, str]]:
    return sorted(
        (str(key), "" if value is None else str(value))
        for key, value in params.items()
        if key not in HASH_FIELDS
    )


def canonicalize(params: Mapping[str, object]) -> str:
    return form_urlencode(_signable_items(params))


def sign(params: Mapping[str, object], secret: str) -> str:
    signing_string = canonicalize(params)
    return hmac.new(secret.encode("utf-8"), signing_string.encode("utf-8"), hashlib.sha512).hexdigest()


def verify(params_with_hash: Mapping[str, object], secret: str) -> bool:
    supplied = params_with_hash.get(SECURE_HASH_FIELD)
    if not supplied:
        return False
    expected = sign(params_with_hash, secret)
    return hmac.compare_digest(expected, str(supplied))


def attach_signature(params: Mapping[str, object], secret: str) -> dict[str, str]:
    """Return the sorted parameters with the signature appended as the last field."""
    signed = dict(_signable_items(params))
    signed[SECURE_HASH_FIELD] = sign(params, secret)
    return signed
