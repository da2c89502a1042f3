from __future__ import annotations

from hashlib import sha256

import bcrypt


_BCRYPT_SHA256_PREFIX = "bcrypt_sha256$"
# Prefix marking hashes that were SHA-256 pre-hashed before bcrypt, which
# lifts bcrypt's 72 byte input limit.


def hash_password(password: str) -> str:
    digest = sha256(password.encode("utf-8")).digest()
    hashed = bcrypt.hashpw(digest, bcrypt.gensalt())
    return f"{_BCRYPT_SHA256_PREFIX}{hashed.decode()}"


def verify_password(password: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    password_bytes = password.encode("utf-8")

    if hashed.startswith(_BCRYPT_SHA256_PREFIX):
        digest = sha256(password_bytes).digest()
        stored = hashed[len(_BCRYPT_SHA256_PREFIX) :].encode()
        try:
            return bcrypt.checkpw(digest, stored)
        except ValueError:
            return False

    # Accounts migrated from the previous platform carry plain bcrypt hashes
    # ("$2a$..." from bcryptjs).
    try:
        return bcrypt.checkpw(password_bytes, hashed.encode())
    except ValueError:
        return False
