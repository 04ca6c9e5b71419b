"""Password hashing helpers shared by the auth service and admin scripts."""

from .security import get_password_hash, verify_password

__all__ = ["get_password_hash", "verify_password"]
