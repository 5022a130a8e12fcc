"""
auth/tokens.py -- Password hashing, JWT, and one-time secret utilities.

Security design decisions:
  Passwords: bcrypt, used directly. Its cost factor makes brute-force of
       low-entropy secrets expensive. _DUMMY_HASH enables timing equalization
       in authenticate() so response time does not reveal whether an email
       is registered.

  JWT: python-jose with HS256. Issued only after OTP verification. Tokens
       carry account_id, email, role and expiry. Verification returns None on
       any failure -- the dependency layer turns that into a 401.

  OTP codes: secrets.randbelow, no leading zero. Stored as
       HMAC-SHA256(SECRET_KEY, code) and compared with hmac.compare_digest.

  References and reset tokens: secrets.token_urlsafe. Reset tokens are stored
       as HMAC-SHA256(SECRET_KEY, token) so the store can look them up in O(1)
       while a leaked database does not hand out working tokens.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Role
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt rejects input longer than 72 bytes. The password policy in
    auth/service.py enforces that limit before this is called.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash or over-long input
        return False


# Computed once at module load so the first login is not measurably slower
# than later ones.
_DUMMY_HASH: str = hash_password("shopfront_timing_dummy")


def authenticate(store: AccountStore, email: str, password: str) -> Account | None:
    """Check an email/password pair against every role store with timing equalization.

    Always runs bcrypt exactly once:
    - Unknown email: bcrypt runs against _DUMMY_HASH
    - Known email: bcrypt runs against the stored hash

    Returns the Account on success, None on any failure.
    """
    account = store.find_active_by_email(email)
    credential = store.get_credential(account.role, account.id) if account is not None else None
    if account is None or credential is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, credential.password_hash):
        return None
    return account


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    account_id: int, email: str, role: Role, expire_seconds: int = 0, secret_key: str = ""
) -> str:
    """Encode a signed JWT with account identity and configurable expiry.

    Args:
        account_id:     Primary key in the role's account table.
        email:          Stored as the JWT subject claim.
        role:           Selects the account table on decode.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.token_expire_seconds.
        secret_key:     Signing key. If empty (default), uses
                        Settings.secret_key.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": email,
        "account_id": account_id,
        "role": role.value,
        "exp": expire,
    }
    return jwt.encode(payload, secret_key or _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret_key: str = "") -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, secret_key or _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "account_id" not in payload or payload.get("role") not in {r.value for r in Role}:
        return None
    return payload


# ---------------------------------------------------------------------------
# One-time secrets
# ---------------------------------------------------------------------------


def generate_otp(length: int = 0) -> str:
    """Return a numeric code of the configured length.

    The first digit is never zero: clients send the code back as a JSON
    number, which would drop leading zeros.
    """
    length = length or _settings.otp_length
    floor = 10 ** (length - 1)
    return str(floor + secrets.randbelow(9 * floor))


def generate_reference() -> str:
    """Return an opaque, URL-safe reference for an OTP challenge (~190 bits)."""
    return secrets.token_urlsafe(24)


def generate_reset_token() -> str:
    """Return a URL-safe password reset token (256 bits of entropy)."""
    return secrets.token_urlsafe(32)


def hash_secret(raw: str, secret_key: str = "") -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw) as a hex string.

    Deterministic, so reset tokens can be looked up by hash. An attacker who
    reads the database still needs SECRET_KEY to test guesses offline.
    """
    return hmac.new(
        (secret_key or _settings.secret_key).encode(),
        raw.encode(),
        hashlib.sha256,
    ).hexdigest()


def secret_matches(raw: str, hashed: str, secret_key: str = "") -> bool:
    """Constant-time comparison of a raw secret against its stored HMAC."""
    return hmac.compare_digest(hash_secret(raw, secret_key), hashed)
