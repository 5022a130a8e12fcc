"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store and the service do the work.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of account roles. Each role has its own account and credential tables."""

    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass
class Account:
    """A registered admin or customer.

    email is case-sensitive as stored. is_deleted is the soft-delete flag;
    deleted accounts are invisible to signup checks and login but their rows
    stay in the table.
    """

    name: str
    email: str
    role: Role
    id: int | None = None
    is_deleted: bool = False
    created_at: str | None = None
    last_login: str | None = None


@dataclass
class Credential:
    """The password hash owned by exactly one Account of the same role."""

    owner_id: int
    password_hash: str
    role: Role
    id: int | None = None
    updated_at: str | None = None


@dataclass
class OtpChallenge:
    """A pending second-factor check created by a successful password login.

    otp_hash is HMAC-SHA256(SECRET_KEY, code). The clear code is handed to
    the caller once at issue time and never persisted.
    """

    reference: str
    otp_hash: str
    account_id: int
    role: Role
    expires_at: str
    attempts: int = 0
    consumed_at: str | None = None
    created_at: str | None = None


@dataclass
class ResetToken:
    """A single-use password reset credential. token_hash is HMAC-SHA256 of the raw token."""

    token_hash: str
    account_id: int
    role: Role
    expires_at: str
    id: int | None = None
    consumed_at: str | None = None
    created_at: str | None = None
