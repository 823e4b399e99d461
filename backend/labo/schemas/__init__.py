from labo.schemas import auth, billing, common

__all__ = [
    "auth",
    "billing",
    "common",
]
