"""Password hashing, JWT access tokens and one-time token digests."""
import hashlib
import secrets
from datetime import timedelta
from typing import Any, Dict, Tuple

import bcrypt
import jwt

import config
from database import utc_now
from errors import UnauthorizedError


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_access_token(user_id: str, role: str) -> str:
    now = utc_now()
    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=config.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired, please log in again")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


def digest_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def new_one_time_token() -> Tuple[str, str]:
    """Return (raw token for the e-mail link, digest to store)."""
    raw = secrets.token_hex(32)
    return raw, digest_token(raw)
