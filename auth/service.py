"""
auth/service.py -- Account lifecycle: signup, login, OTP verification, password reset.

State machines:
  Login:  Unauthenticated -> OtpPending (login) -> Verified (verify_otp)
          Any failure leaves the caller unauthenticated.
  Reset:  Requested -> TokenIssued (forgot_password) -> Consumed (reset_password)

Expected failures are raised as auth.errors.ServiceError subclasses; the API
layer renders them. verify_otp() additionally wraps unexpected exceptions in
InternalError after logging them, so a store failure never leaks detail to
the client.

Layer rule: no imports from api/ or catalog/, no FastAPI imports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ServiceError,
    ValidationError,
)
from auth.models import Account, Credential, OtpChallenge, ResetToken, Role
from auth.store import AccountStore, to_iso
from auth.tokens import (
    authenticate,
    create_access_token,
    generate_otp,
    generate_reference,
    generate_reset_token,
    hash_password,
    hash_secret,
    secret_matches,
)
from core.config import Settings, get_settings

logger = logging.getLogger("shopfront.auth")

USER_CREATED = "User created successfully."
USER_ALREADY_EXISTS = "User already exists."
VERIFICATION_SUCCESSFUL = "Verification successful"

_BAD_CREDENTIALS = "Invalid email or password."
_BAD_OTP = "Invalid or expired OTP."
_BAD_RESET_TOKEN = "Invalid or expired reset token."

# Stores checked for an existing live account before signup, in order.
# The storage layer enforces cross-role uniqueness on insert; this is the
# fast path that avoids hashing work and gives a clean error.
_SIGNUP_CHECK_ORDER: dict[Role, tuple[Role, ...]] = {
    Role.ADMIN: (Role.CUSTOMER, Role.ADMIN),
    Role.CUSTOMER: (Role.ADMIN, Role.CUSTOMER),
}

_PASSWORD_MIN_LENGTH = 8
_PASSWORD_MAX_BYTES = 72  # bcrypt input limit


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class SignupResult:
    account: Account
    credential: Credential


@dataclass
class OtpIssued:
    """Returned by login(). otp is the clear code, handed out exactly once."""

    otp: str
    reference: str
    expires_at: str
    account: Account


@dataclass
class Verification:
    access_token: str
    token_type: str
    expires_in: int
    account: Account


@dataclass
class ResetIssued:
    """Returned by forgot_password(). token and account are None for an unknown email."""

    token: str | None
    expires_at: str
    account: Account | None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def check_password_policy(password: str) -> None:
    """Raise ValidationError unless the password is 8+ chars, <= 72 bytes, and not space-padded."""
    if len(password) < _PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {_PASSWORD_MIN_LENGTH} characters.")
    if len(password.encode("utf-8")) > _PASSWORD_MAX_BYTES:
        raise ValidationError(f"Password must be at most {_PASSWORD_MAX_BYTES} bytes.")
    if password != password.strip(" "):
        raise ValidationError("Password must not start or end with a space.")


def _is_expired(expires_at: str) -> bool:
    return datetime.fromisoformat(expires_at) <= datetime.now(timezone.utc)


def _expiry(seconds: int) -> str:
    return to_iso(datetime.now(timezone.utc) + timedelta(seconds=seconds))


def _ref_hint(reference: str) -> str:
    # First characters only; the full reference is a bearer secret.
    return reference[:6]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class AuthService:
    """Orchestrates the account lifecycle on top of an AccountStore.

    Usage:
        service = AuthService(AccountStore())
        service.signup("Ada", "ada@example.com", "Passw0rd!", Role.ADMIN)
        issued = service.login("ada@example.com", "Passw0rd!")
        verification = service.verify_otp(issued.otp, issued.reference)
    """

    def __init__(self, store: AccountStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup(self, name: str, email: str, password: str, role: Role) -> SignupResult:
        """Create an account and its credential.

        Raises ConflictError if any live account (of any role) already uses
        the email. Account, credential and email registry row are written in
        one transaction, so a failure leaves nothing behind.
        """
        if not isinstance(role, Role):
            raise ValidationError(f"Unknown role {role!r}.")
        check_password_policy(password)

        for existing_role in _SIGNUP_CHECK_ORDER[role]:
            if self.store.find_active(existing_role, email) is not None:
                logger.info("Signup rejected: email already registered (role=%s)", role.value)
                raise ConflictError(USER_ALREADY_EXISTS)

        password_hash = hash_password(password)
        try:
            account, credential = self.store.create_account(Account(name=name, email=email, role=role), password_hash)
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email.
            logger.info("Signup rejected: email registered concurrently (role=%s)", role.value)
            raise ConflictError(USER_ALREADY_EXISTS) from exc

        logger.info("Account created (role=%s, id=%d)", role.value, account.id)
        return SignupResult(account=account, credential=credential)

    # ------------------------------------------------------------------
    # Login / OTP
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> OtpIssued:
        """Verify the password and open an OTP challenge.

        Raises AuthenticationError for an unknown email or a wrong password.
        No challenge is stored in that case.
        """
        account = authenticate(self.store, email, password)
        if account is None:
            logger.info("Login failed: bad credentials")
            raise AuthenticationError(_BAD_CREDENTIALS)

        otp = generate_otp(self.settings.otp_length)
        reference = generate_reference()
        expires_at = _expiry(self.settings.otp_expire_seconds)
        self.store.create_otp_challenge(
            OtpChallenge(
                reference=reference,
                otp_hash=hash_secret(otp, self.settings.secret_key),
                account_id=account.id,
                role=account.role,
                expires_at=expires_at,
            )
        )
        logger.info(
            "OTP challenge issued (role=%s, id=%d, ref=%s...)",
            account.role.value,
            account.id,
            _ref_hint(reference),
        )
        return OtpIssued(otp=otp, reference=reference, expires_at=expires_at, account=account)

    def verify_otp(self, otp: int | str | None, reference: str | None) -> Verification:
        """Complete a login by checking the OTP against its challenge.

        The challenge is single use: a successful call consumes it, and every
        later call with the same reference fails. Wrong codes count toward
        OTP_MAX_ATTEMPTS, after which the challenge is burned.

        Raises ValidationError if either input is missing, AuthenticationError
        if the reference or code is not valid, and InternalError if anything
        unexpected goes wrong during lookup or matching.
        """
        if otp in (None, "") or not reference:
            raise ValidationError("Enter OTP and OTP Reference.")
        try:
            return self._verify_otp(str(otp), reference)
        except ServiceError:
            raise
        except Exception as exc:
            logger.exception("Error during OTP verification (ref=%s...)", _ref_hint(reference))
            raise InternalError("Error during OTP verification.") from exc

    def _verify_otp(self, otp: str, reference: str) -> Verification:
        challenge = self.store.get_otp_challenge(reference)
        if challenge is None or challenge.consumed_at is not None or _is_expired(challenge.expires_at):
            logger.info("OTP rejected: unknown, used or expired challenge (ref=%s...)", _ref_hint(reference))
            raise AuthenticationError(_BAD_OTP)

        if not secret_matches(otp, challenge.otp_hash, self.settings.secret_key):
            attempts = self.store.record_otp_failure(reference, self.settings.otp_max_attempts)
            logger.warning(
                "OTP mismatch (ref=%s..., attempt %d/%d)",
                _ref_hint(reference),
                attempts,
                self.settings.otp_max_attempts,
            )
            raise AuthenticationError(_BAD_OTP)

        if not self.store.consume_otp_challenge(reference):
            # Another request consumed it, or it expired, between read and write.
            raise AuthenticationError(_BAD_OTP)

        account = self.store.get_account(challenge.role, challenge.account_id)
        if account is None or account.is_deleted:
            raise AuthenticationError(_BAD_OTP)

        self.store.update_last_login(account.role, account.id)
        token = create_access_token(
            account.id,
            account.email,
            account.role,
            expire_seconds=self.settings.token_expire_seconds,
            secret_key=self.settings.secret_key,
        )
        logger.info("Login verified (role=%s, id=%d)", account.role.value, account.id)
        return Verification(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=self.settings.token_expire_seconds,
            account=account,
        )

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> ResetIssued:
        """Issue a single-use reset token for a live account.

        An unknown email gets the same result shape with no token and no
        account, so callers cannot tell registered emails apart. Delivering
        the token to the user is the caller's concern.
        """
        expires_at = _expiry(self.settings.reset_token_expire_seconds)
        account = self.store.find_active_by_email(email)
        if account is None:
            logger.info("Reset requested for an unknown email")
            return ResetIssued(token=None, expires_at=expires_at, account=None)

        token = generate_reset_token()
        self.store.create_reset_token(
            ResetToken(
                token_hash=hash_secret(token, self.settings.secret_key),
                account_id=account.id,
                role=account.role,
                expires_at=expires_at,
            )
        )
        logger.info("Reset token issued (role=%s, id=%d)", account.role.value, account.id)
        return ResetIssued(token=token, expires_at=expires_at, account=account)

    def reset_password(self, token: str, password: str, confirm_password: str) -> Account:
        """Replace the account's password using a reset token.

        Raises AuthenticationError for an unknown, used or expired token (or
        one whose account was deleted), and ValidationError when the two
        passwords differ or the new password breaks the policy. The credential
        is only touched once every check has passed.
        """
        token_hash = hash_secret(token, self.settings.secret_key)
        reset = self.store.get_reset_token(token_hash)
        if reset is None or reset.consumed_at is not None or _is_expired(reset.expires_at):
            raise AuthenticationError(_BAD_RESET_TOKEN)
        account = self.store.get_account(reset.role, reset.account_id)
        if account is None or account.is_deleted:
            raise AuthenticationError(_BAD_RESET_TOKEN)

        if password != confirm_password:
            raise ValidationError("Passwords do not match.")
        check_password_policy(password)

        if not self.store.reset_password(token_hash, hash_password(password)):
            raise AuthenticationError(_BAD_RESET_TOKEN)
        logger.info("Password reset (role=%s, id=%d)", account.role.value, account.id)
        return account

    # ------------------------------------------------------------------
    # Deactivation
    # ------------------------------------------------------------------

    def deactivate(self, account: Account) -> None:
        """Soft-delete an account and release its email for a new signup.

        Outstanding access tokens stop working because the auth dependency
        rejects deleted accounts. Raises NotFoundError if the account is
        already deleted.
        """
        if not self.store.soft_delete_account(account.role, account.id):
            raise NotFoundError("Account not found.")
        logger.info("Account deactivated (role=%s, id=%d)", account.role.value, account.id)
