from . import admin, auth, billing, health

__all__ = [
    "admin",
    "auth",
    "billing",
    "health",
]
