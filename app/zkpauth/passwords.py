"""Password digests.

bcrypt is used as a black-box one-way function; digests are stored on the
principal record and compared in constant time.
"""

import logging

import bcrypt as bcrypt_lib

from app.core.config import BCRYPT_ROUNDS

log = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes; bcrypt>=5 raises beyond that
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode()) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Raw password, at most MAX_PASSWORD_BYTES when UTF-8 encoded
        rounds: bcrypt cost factor

    Returns:
        bcrypt digest as a str
    """
    return bcrypt_lib.hashpw(password.encode(), bcrypt_lib.gensalt(rounds=rounds)).decode()


def verify_password(password: str, digest: str) -> bool:
    """Check a password against a stored bcrypt digest."""
    if not digest or password_too_long(password):
        return False
    try:
        return bcrypt_lib.checkpw(password.encode(), digest.encode())
    except ValueError:
        # bcrypt.checkpw raises on a malformed digest
        log.warning("Malformed password digest on principal record")
        return False
