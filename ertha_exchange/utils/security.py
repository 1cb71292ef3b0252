import hashlib
import hmac
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

import bcrypt
import jwt
from jwt import ExpiredSignatureError, InvalidTokenError
from fastapi import HTTPException, status

from ertha_exchange.config import get_settings

# Constants
_BCRYPT_MAX_BYTES = 72


# --------------------------
# 🧠 PASSWORD HASHING
# --------------------------

def _truncate_to_bytes(s: Optional[str], max_bytes: int = _BCRYPT_MAX_BYTES) -> Optional[str]:
    """Ensure string’s UTF-8 encoding ≤ max_bytes by truncating safely."""
    if s is None:
        return None
    b = s.encode("utf-8")
    if len(b) <= max_bytes:
        return s
    truncated = b[:max_bytes]
    while True:
        try:
            return truncated.decode("utf-8")
        except UnicodeDecodeError:
            truncated = truncated[:-1]


def hash_password(password: str) -> str:
    """Truncate then hash password using bcrypt (returns utf-8 string)."""
    if password is None:
        raise ValueError("Password cannot be None")
    safe = _truncate_to_bytes(password, _BCRYPT_MAX_BYTES)
    hashed = bcrypt.hashpw(safe.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Verify password using bcrypt after truncation."""
    if password is None or hashed is None:
        return False
    safe = _truncate_to_bytes(password, _BCRYPT_MAX_BYTES)
    hashed_bytes = hashed.encode("utf-8") if isinstance(hashed, str) else hashed
    try:
        return bcrypt.checkpw(safe.encode("utf-8"), hashed_bytes)
    except ValueError:
        return False


# --------------------------
# 🔐 JWT AUTHENTICATION
# --------------------------

def create_access_token(payload: Dict[str, Any], minutes: Optional[int] = None) -> str:
    """Generate a signed JWT access token carrying a unique `jti`."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    to_encode = payload.copy()

    if "sub" not in to_encode and "user_id" in to_encode:
        to_encode["sub"] = str(to_encode["user_id"])

    lifetime = minutes if minutes is not None else settings.jwt_expires_minutes
    to_encode.update({
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=lifetime)).timestamp()),
    })

    if settings.jwt_issuer:
        to_encode.setdefault("iss", settings.jwt_issuer)
    if settings.jwt_audience:
        to_encode.setdefault("aud", settings.jwt_audience)

    return jwt.encode(to_encode, settings.signing_secret, algorithm=settings.jwt_algo)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate JWT token; 401 on any failure."""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.signing_secret,
            algorithms=[settings.jwt_algo],
            audience=settings.jwt_audience or None,
            issuer=settings.jwt_issuer or None,
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


# --------------------------
# 🔏 OPAQUE TOKENS + SIGNATURES
# --------------------------

def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def hmac_sha256_hex(secret: str, message) -> str:
    body = message.encode("utf-8") if isinstance(message, str) else message
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected, received)
