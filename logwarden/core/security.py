# logwarden/core/security.py
"""
Password hashing and session tokens

Passwords are stored as PBKDF2-SHA256 hashes:
    pbkdf2_sha256$<iterations>$<salt b64>$<hash b64>

Session tokens are random URL-safe strings handed to the client once.
Only their SHA-256 digest is stored, so a leaked database can't be
replayed as bearer tokens.
"""

import os
import hashlib
import logging
import secrets
from base64 import urlsafe_b64encode, urlsafe_b64decode
from typing import Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import settings

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "pbkdf2_sha256"
SALT_BYTES = 16
TOKEN_BYTES = 32


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """Hash a password with a fresh random salt"""
    iterations = iterations or settings.password_iterations
    salt = os.urandom(SALT_BYTES)
    key = _kdf(salt, iterations).derive(password.encode("utf-8"))
    return "$".join([
        HASH_ALGORITHM,
        str(iterations),
        urlsafe_b64encode(salt).decode("ascii"),
        urlsafe_b64encode(key).decode("ascii"),
    ])


def verify_password(password: str, stored_hash: str) -> bool:
    """
    Check a password against a stored hash

    Returns False (never raises) for a wrong password or a hash in an
    unknown format.
    """
    try:
        algorithm, iterations, salt, key = stored_hash.split("$")
        if algorithm != HASH_ALGORITHM:
            return False
        _kdf(urlsafe_b64decode(salt), int(iterations)).verify(
            password.encode("utf-8"), urlsafe_b64decode(key)
        )
        return True
    except InvalidKey:
        return False
    except ValueError:
        logger.warning("Stored password hash has an unknown format")
        return False


def generate_token() -> str:
    """New random session token"""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Digest under which a session token is stored"""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
