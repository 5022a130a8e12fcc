"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Accounts authenticate with the access token issued by POST /auth/verifyOtp,
sent as an Authorization: Bearer <token> header.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_account() and raises HTTP 403 if not admin.

Layer rule: no imports from api/ or catalog/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account, Role
from auth.tokens import decode_access_token


def try_get_current_account(request: Request) -> Account | None:
    """Resolve the Bearer token to a live Account. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    payload = decode_access_token(auth_header[7:])
    if payload is None:
        return None

    account_store = request.app.state.account_store
    account = account_store.get_account(Role(payload["role"]), payload["account_id"])
    if account is None or account.is_deleted:
        return None
    return account


def get_current_account(request: Request) -> Account:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(status_code=401, detail="Authentication required.")
    return account


def require_admin(request: Request) -> Account:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    account = get_current_account(request)
    if account.role is not Role.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return account
