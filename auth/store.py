"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as catalog/store.py).
AccountStore is the repository; the _row_to_* functions are the mappers.
Service and route code never touches SQL directly.

Tables:
  admins / customers                     -- one account table per Role
  admin_credentials / customer_credentials
                                         -- password hashes, one row per account
  account_emails                         -- email registry, PRIMARY KEY(email)
  otp_challenges                         -- pending second-factor checks
  reset_tokens                           -- single-use password reset tokens

Email uniqueness across roles:
  Two per-role tables cannot share a UNIQUE constraint, so every live account
  also owns a row in account_emails. The registry row, the account row and
  the credential row are written in ONE transaction by create_account(). A
  concurrent signup for the same email loses on the registry's primary key,
  raises IntegrityError, and its whole transaction rolls back -- no orphaned
  account without a credential. Soft delete releases the registry row so the
  email can be reused.

Single-use records:
  consume_otp_challenge() and reset_password() use a conditional
  UPDATE ... WHERE consumed_at IS NULL AND expires_at > now. rowcount tells
  the caller whether it won; a second consumer always sees 0.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
string comparison in SQL orders them correctly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select, text
from sqlalchemy.engine import Engine

from auth.models import Account, Credential, OtpChallenge, ResetToken, Role
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()


def _account_table(name: str) -> Table:
    return Table(
        name,
        _metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(255), nullable=False),
        # Not UNIQUE: soft-deleted rows keep their email. account_emails
        # enforces uniqueness among live accounts.
        Column("email", String(254), nullable=False, index=True),
        Column("is_deleted", Integer, nullable=False, server_default="0"),
        Column("created_at", String(32), nullable=False),
        Column("last_login", String(32)),
    )


def _credential_table(name: str) -> Table:
    return Table(
        name,
        _metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("owner_id", Integer, nullable=False, unique=True),
        Column("password_hash", Text, nullable=False),
        Column("updated_at", String(32), nullable=False),
    )


_accounts: dict[Role, Table] = {
    Role.ADMIN: _account_table("admins"),
    Role.CUSTOMER: _account_table("customers"),
}

_credentials: dict[Role, Table] = {
    Role.ADMIN: _credential_table("admin_credentials"),
    Role.CUSTOMER: _credential_table("customer_credentials"),
}

# find_active_by_email() searches the role tables in this order.
_LOOKUP_ORDER: tuple[Role, ...] = (Role.ADMIN, Role.CUSTOMER)

_account_emails = Table(
    "account_emails",
    _metadata,
    Column("email", String(254), primary_key=True),
    Column("role", String(20), nullable=False),
    Column("account_id", Integer, nullable=False),
)

_otp_challenges = Table(
    "otp_challenges",
    _metadata,
    Column("reference", String(64), primary_key=True),
    Column("otp_hash", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("account_id", Integer, nullable=False),
    Column("role", String(20), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("attempts", Integer, nullable=False, server_default="0"),
    Column("consumed_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "reset_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("account_id", Integer, nullable=False),
    Column("role", String(20), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("consumed_at", String(32)),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Format a UTC datetime with fixed precision so stored strings sort chronologically."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for accounts, credentials, OTP challenges and reset tokens.

    Usage:
        store = AccountStore()
        account, credential = store.create_account(
            Account(name="Ada", email="ada@example.com", role=Role.ADMIN),
            hash_password("correct horse"),
        )
        found = store.find_active(Role.ADMIN, "ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_active(self, role: Role, email: str) -> Account | None:
        """Look up a non-deleted account by exact email (case-sensitive)."""
        table = _accounts[role]
        with self.engine.connect() as conn:
            row = conn.execute(
                table.select().where((table.c.email == email) & (table.c.is_deleted == 0))
            ).fetchone()
        return _row_to_account(row, role) if row is not None else None

    def find_active_by_email(self, email: str) -> Account | None:
        """Search every role table, admins first, for a live account with this email.

        Emails are unique among live accounts across roles, so at most one
        table can match.
        """
        for role in _LOOKUP_ORDER:
            account = self.find_active(role, email)
            if account is not None:
                return account
        return None

    def get_account(self, role: Role, account_id: int) -> Account | None:
        """Look up an account by primary key, deleted or not. Returns None if not found."""
        table = _accounts[role]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.id == account_id)).fetchone()
        return _row_to_account(row, role) if row is not None else None

    def count_accounts(self, role: Role) -> int:
        """Return the number of account rows for a role, including soft-deleted ones.

        Not used by the request path; the test suite uses it to prove that a
        rejected signup wrote nothing.
        """
        table = _accounts[role]
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(table)).scalar()
        return result or 0

    def create_account(self, account: Account, password_hash: str) -> tuple[Account, Credential]:
        """Insert account, credential and email registry row in one transaction.

        Raises sqlalchemy.exc.IntegrityError if the email is already held by
        a live account of any role. Nothing is written in that case.
        """
        accounts = _accounts[account.role]
        credentials = _credentials[account.role]
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                accounts.insert().values(
                    name=account.name,
                    email=account.email,
                    is_deleted=0,
                    created_at=now,
                )
            )
            account_id = result.inserted_primary_key[0]
            conn.execute(
                _account_emails.insert().values(
                    email=account.email,
                    role=account.role.value,
                    account_id=account_id,
                )
            )
            result = conn.execute(
                credentials.insert().values(
                    owner_id=account_id,
                    password_hash=password_hash,
                    updated_at=now,
                )
            )
            credential_id = result.inserted_primary_key[0]

        created = Account(
            id=account_id,
            name=account.name,
            email=account.email,
            role=account.role,
            is_deleted=False,
            created_at=now,
        )
        credential = Credential(
            id=credential_id,
            owner_id=account_id,
            password_hash=password_hash,
            role=account.role,
            updated_at=now,
        )
        return created, credential

    def soft_delete_account(self, role: Role, account_id: int) -> bool:
        """Flag an account as deleted and release its email.

        Returns True if a live account was deleted, False if not found or
        already deleted.
        """
        table = _accounts[role]
        with self.engine.begin() as conn:
            result = conn.execute(
                table.update().where((table.c.id == account_id) & (table.c.is_deleted == 0)).values(is_deleted=1)
            )
            if result.rowcount == 0:
                return False
            conn.execute(
                _account_emails.delete().where(
                    (_account_emails.c.role == role.value) & (_account_emails.c.account_id == account_id)
                )
            )
        return True

    def update_last_login(self, role: Role, account_id: int) -> None:
        """Stamp the current UTC timestamp as last_login after a verified login."""
        table = _accounts[role]
        with self.engine.connect() as conn:
            conn.execute(table.update().where(table.c.id == account_id).values(last_login=_now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def get_credential(self, role: Role, owner_id: int) -> Credential | None:
        table = _credentials[role]
        with self.engine.connect() as conn:
            row = conn.execute(table.select().where(table.c.owner_id == owner_id)).fetchone()
        return _row_to_credential(row, role) if row is not None else None

    # ------------------------------------------------------------------
    # OTP challenges
    # ------------------------------------------------------------------

    def create_otp_challenge(self, challenge: OtpChallenge) -> None:
        with self.engine.connect() as conn:
            conn.execute(
                _otp_challenges.insert().values(
                    reference=challenge.reference,
                    otp_hash=challenge.otp_hash,
                    account_id=challenge.account_id,
                    role=challenge.role.value,
                    expires_at=challenge.expires_at,
                    attempts=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()

    def get_otp_challenge(self, reference: str) -> OtpChallenge | None:
        with self.engine.connect() as conn:
            row = conn.execute(_otp_challenges.select().where(_otp_challenges.c.reference == reference)).fetchone()
        return _row_to_otp_challenge(row) if row is not None else None

    def count_otp_challenges(self, account_id: int | None = None) -> int:
        """Count stored challenges, optionally for one account id.

        Not used by the request path; the test suite uses it to prove that a
        failed login opened no challenge.
        """
        query = select(func.count()).select_from(_otp_challenges)
        if account_id is not None:
            query = query.where(_otp_challenges.c.account_id == account_id)
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def record_otp_failure(self, reference: str, max_attempts: int) -> int:
        """Increment the failed-attempt counter and return the new count.

        When the counter reaches max_attempts the challenge is burned by
        stamping consumed_at, so further guesses fail even with the right code.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _otp_challenges.update()
                .where(_otp_challenges.c.reference == reference)
                .values(attempts=_otp_challenges.c.attempts + 1)
            )
            attempts = conn.execute(
                select(_otp_challenges.c.attempts).where(_otp_challenges.c.reference == reference)
            ).scalar()
            attempts = attempts or 0
            if attempts >= max_attempts:
                conn.execute(
                    _otp_challenges.update()
                    .where((_otp_challenges.c.reference == reference) & _otp_challenges.c.consumed_at.is_(None))
                    .values(consumed_at=_now_iso())
                )
        return attempts

    def consume_otp_challenge(self, reference: str) -> bool:
        """Mark a challenge as used. Returns False if it was already consumed or has expired."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _otp_challenges.update()
                .where(
                    (_otp_challenges.c.reference == reference)
                    & _otp_challenges.c.consumed_at.is_(None)
                    & (_otp_challenges.c.expires_at > now)
                )
                .values(consumed_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def create_reset_token(self, token: ResetToken) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _reset_tokens.insert().values(
                    token_hash=token.token_hash,
                    account_id=token.account_id,
                    role=token.role.value,
                    expires_at=token.expires_at,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_reset_token(self, token_hash: str) -> ResetToken | None:
        """Look up a reset token by its HMAC. O(1) via UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def reset_password(self, token_hash: str, password_hash: str) -> bool:
        """Consume the reset token and replace the owner's password hash atomically.

        Every other outstanding reset token of the same account is invalidated
        in the same transaction. Returns False (and writes nothing) if the
        token is unknown, already consumed, or expired.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token_hash == token_hash)).fetchone()
            if row is None:
                return False
            result = conn.execute(
                _reset_tokens.update()
                .where(
                    (_reset_tokens.c.id == row.id)
                    & _reset_tokens.c.consumed_at.is_(None)
                    & (_reset_tokens.c.expires_at > now)
                )
                .values(consumed_at=now)
            )
            if result.rowcount == 0:
                return False
            role = Role(row.role)
            credentials = _credentials[role]
            conn.execute(
                credentials.update()
                .where(credentials.c.owner_id == row.account_id)
                .values(password_hash=password_hash, updated_at=now)
            )
            conn.execute(
                _reset_tokens.update()
                .where(
                    (_reset_tokens.c.account_id == row.account_id)
                    & (_reset_tokens.c.role == row.role)
                    & _reset_tokens.c.consumed_at.is_(None)
                )
                .values(consumed_at=now)
            )
        return True

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete expired or consumed OTP challenges and reset tokens. Returns rows removed."""
        now = _now_iso()
        with self.engine.begin() as conn:
            removed = conn.execute(
                _otp_challenges.delete().where(
                    (_otp_challenges.c.expires_at <= now) | _otp_challenges.c.consumed_at.is_not(None)
                )
            ).rowcount
            removed += conn.execute(
                _reset_tokens.delete().where(
                    (_reset_tokens.c.expires_at <= now) | _reset_tokens.c.consumed_at.is_not(None)
                )
            ).rowcount
        return removed

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row, role: Role) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        role=role,
        is_deleted=bool(row.is_deleted),
        created_at=row.created_at,
        last_login=row.last_login,
    )


def _row_to_credential(row, role: Role) -> Credential:
    return Credential(
        id=row.id,
        owner_id=row.owner_id,
        password_hash=row.password_hash,
        role=role,
        updated_at=row.updated_at,
    )


def _row_to_otp_challenge(row) -> OtpChallenge:
    return OtpChallenge(
        reference=row.reference,
        otp_hash=row.otp_hash,
        account_id=row.account_id,
        role=Role(row.role),
        expires_at=row.expires_at,
        attempts=row.attempts,
        consumed_at=row.consumed_at,
        created_at=row.created_at,
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        id=row.id,
        token_hash=row.token_hash,
        account_id=row.account_id,
        role=Role(row.role),
        expires_at=row.expires_at,
        consumed_at=row.consumed_at,
        created_at=row.created_at,
    )
