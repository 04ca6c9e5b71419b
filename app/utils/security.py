"""Password hashing helpers built on passlib."""

from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=10,
)


def get_password_hash(password: str) -> str:
    """Hash a plain text password with a fresh bcrypt salt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Check a plain text password against a stored bcrypt hash.

    Returns False instead of raising when the stored hash is unusable.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False
