from labo.utils.security import (
    create_access_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from labo.utils.signature import attach_signature, canonicalize, sign, verify

__all__ = [
    "attach_signature",
    "canonicalize",
    "create_access_token",
    "decode_token",
    "get_password_hash",
    "sign",
    "verify",
    "verify_password",
]
