import secrets

import bcrypt

from edubot.logging_config import get_logger

logger = get_logger("passwords")

BCRYPT_ROUNDS = 10
# bcrypt only reads the first 72 bytes; newer releases reject longer input outright.
MAX_PASSWORD_BYTES = 72


def _secret(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_secret(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    """Compare a candidate against a stored bcrypt hash. A malformed hash never matches."""
    try:
        return bcrypt.checkpw(_secret(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def generate_verification_code() -> str:
    return str(secrets.randbelow(900000) + 100000)
