"""
api/routes/auth.py -- Account lifecycle REST endpoints.

Routes:
  POST /auth/sign-up       -- create an admin or customer account
  POST /auth/login         -- check password; open an OTP challenge
  POST /auth/verifyOtp     -- complete login; returns a Bearer access token
  GET  /auth/me            -- identity of the Bearer token's account
  DELETE /auth/me          -- deactivate (soft-delete) the Bearer token's account
  POST /forgot-password    -- issue a single-use reset token (same response for unknown emails)
  POST /reset-password     -- set a new password using a reset token

All business rules live in auth/service.py. Handlers here only translate
between request models, the service, and response envelopes. Service
failures propagate as ServiceError and are rendered by api/main.py.

Security:
  Credential endpoints are rate-limited per IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries a secret.
  Handlers are sync (def) because bcrypt is CPU-bound; FastAPI runs them on
  its thread pool so they do not block the event loop.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountOut,
    CredentialOut,
    Envelope,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ResetIssuedOut,
    ResetPasswordRequest,
    SignupData,
    SignupRequest,
    VerificationOut,
    VerifyOtpRequest,
    VerifyOtpResponse,
)
from auth.dependencies import get_current_account
from auth.models import Account
from auth.service import USER_CREATED, VERIFICATION_SUCCESSFUL, AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/sign-up, /auth/login, /auth/verifyOtp: public
# - POST /forgot-password, /reset-password:           public
# - GET, DELETE /auth/me:                              requires auth (get_current_account)
router = APIRouter()

_settings = get_settings()


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


@router.post("/auth/sign-up", response_model=Envelope[SignupData])
@limiter.limit(_settings.login_rate_limit)
def signup(request: Request, body: SignupRequest) -> Envelope[SignupData]:
    """Create an account and its credential in one step.

    409 if any live account (admin or customer) already uses the email.
    """
    service: AuthService = request.app.state.auth_service
    result = service.signup(body.name, body.email, body.password, body.role)
    return Envelope[SignupData](
        status_code=200,
        message=USER_CREATED,
        data=SignupData(
            account=AccountOut.from_domain(result.account),
            credential=CredentialOut.from_domain(result.credential),
        ),
    )


# ---------------------------------------------------------------------------
# Login + OTP
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse, response_model_exclude_none=True)
@limiter.limit(_settings.login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Check email and password; return an OTP challenge.

    Returns the same 401 for an unknown email and a wrong password so the
    response does not reveal which accounts exist.
    """
    service: AuthService = request.app.state.auth_service
    issued = service.login(body.email, body.password)
    payload = LoginResponse(
        otp=int(issued.otp) if _settings.return_secrets_in_response else None,
        otp_reference=issued.reference,
        expires_at=issued.expires_at,
    )
    return _no_store(payload.model_dump(mode="json", by_alias=True, exclude_none=True))


@router.post("/auth/verifyOtp", response_model=VerifyOtpResponse)
@limiter.limit(_settings.login_rate_limit)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Exchange a valid OTP and its reference for an access token. Single use."""
    service: AuthService = request.app.state.auth_service
    verification = service.verify_otp(body.otp, body.otp_reference)
    payload = VerifyOtpResponse(
        status_code=200,
        message=VERIFICATION_SUCCESSFUL,
        result=VerificationOut(
            access_token=verification.access_token,
            token_type=verification.token_type,
            expires_in=verification.expires_in,
            account=AccountOut.from_domain(verification.account),
        ),
    )
    return _no_store(payload.model_dump(mode="json", by_alias=True))


@router.get("/auth/me", response_model=AccountOut)
async def me(current_account: Account = Depends(get_current_account)) -> AccountOut:
    """Return the account the Bearer token belongs to."""
    return AccountOut.from_domain(current_account)


@router.delete("/auth/me", response_model=Envelope[None])
@limiter.limit(_settings.login_rate_limit)
def deactivate_me(request: Request, current_account: Account = Depends(get_current_account)) -> Envelope[None]:
    """Soft-delete the caller's account. Its email becomes free for a new signup."""
    service: AuthService = request.app.state.auth_service
    service.deactivate(current_account)
    return Envelope[None](status_code=200, message="Account deactivated.")


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password", response_model=Envelope[ResetIssuedOut])
@limiter.limit(_settings.login_rate_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Start a password reset.

    Unknown emails get the same 200 envelope as registered ones, so the
    endpoint cannot be used to discover accounts. Only a real reset carries
    a token, and only while RETURN_SECRETS_IN_RESPONSE is on.
    """
    service: AuthService = request.app.state.auth_service
    issued = service.forgot_password(body.email)
    payload = Envelope[ResetIssuedOut](
        status_code=200,
        message="Password reset initiated.",
        data=ResetIssuedOut(
            token=issued.token if _settings.return_secrets_in_response else None,
            expires_at=issued.expires_at,
        ),
    )
    return _no_store(payload.model_dump(mode="json", by_alias=True, exclude_none=True))


@router.post("/reset-password", response_model=Envelope[AccountOut])
@limiter.limit(_settings.login_rate_limit)
def reset_password(request: Request, body: ResetPasswordRequest) -> Envelope[AccountOut]:
    """Set a new password with a reset token. The token cannot be used again."""
    service: AuthService = request.app.state.auth_service
    account = service.reset_password(body.token, body.password, body.confirm_password)
    return Envelope[AccountOut](
        status_code=200,
        message="Password reset successful.",
        data=AccountOut.from_domain(account),
    )
