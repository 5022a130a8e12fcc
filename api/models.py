"""
API request and response models for Shopfront REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Wire format: JSON keys are camelCase (statusCode, otpReference, categoryId).
Python attribute names stay snake_case; _CamelModel's alias generator does
the translation and populate_by_name lets handlers construct by field name.
Responses are rendered by alias, which FastAPI does by default for
response_model.

Every non-error response that is not a login/OTP payload uses Envelope:
{statusCode, message, data?}. Errors use ErrorResponse: {statusCode, message}.
"""

from typing import Generic, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from auth.models import Account, Credential, Role
from catalog.models import Category, Product

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# No leading or trailing space. Written without look-around because
# pydantic-core's regex engine does not support it.
PASSWORD_PATTERN = r"^[^ ](.*[^ ])?$"

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _CamelOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Envelope(_CamelOut, Generic[T]):
    """The uniform {statusCode, message, data?} response shape."""

    status_code: int = 200
    message: str
    data: Optional[T] = None


class ErrorResponse(_CamelOut):
    """Error envelope returned on 4xx/5xx responses."""

    status_code: int
    message: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class SignupRequest(_CamelModel):
    """Request body for POST /auth/sign-up.

    role is the closed Role enum: any other value is a 422 before the
    service runs.
    """

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=8, max_length=72, pattern=PASSWORD_PATTERN)
    role: Role


class LoginRequest(_CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72, pattern=PASSWORD_PATTERN)


class VerifyOtpRequest(_CamelModel):
    """Request body for POST /auth/verifyOtp. otp is sent as a JSON number."""

    otp: int = Field(ge=0)
    otp_reference: str = Field(min_length=6, max_length=64)


class ForgotPasswordRequest(_CamelModel):
    email: EmailStr


class ResetPasswordRequest(_CamelModel):
    """Request body for POST /reset-password.

    The confirmation field is accepted as confirPassword (the published
    contract) or confirmPassword. The two passwords are compared in the
    service, which also applies the password policy.
    """

    token: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    confirm_password: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("confirPassword", "confirmPassword", "confirm_password"),
    )


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class AccountOut(_CamelOut):
    id: int
    name: str
    email: str
    role: Role
    is_deleted: bool
    created_at: Optional[str] = None
    last_login: Optional[str] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountOut":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            role=account.role,
            is_deleted=account.is_deleted,
            created_at=account.created_at,
            last_login=account.last_login,
        )


class CredentialOut(_CamelOut):
    """Credential summary. The password hash never leaves the service."""

    id: int
    owner_id: int
    role: Role
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, credential: Credential) -> "CredentialOut":
        return cls(
            id=credential.id,
            owner_id=credential.owner_id,
            role=credential.role,
            updated_at=credential.updated_at,
        )


class SignupData(_CamelOut):
    account: AccountOut
    credential: CredentialOut


class LoginResponse(_CamelOut):
    """Response for POST /auth/login. otp is omitted when secrets are not returned in responses."""

    otp: Optional[int] = None
    otp_reference: str
    expires_at: str


class VerificationOut(_CamelOut):
    access_token: str
    token_type: str
    expires_in: int
    account: AccountOut


class VerifyOtpResponse(_CamelOut):
    status_code: int = 200
    message: str
    result: VerificationOut


class ResetIssuedOut(_CamelOut):
    token: Optional[str] = None
    expires_at: str


# ---------------------------------------------------------------------------
# Catalog -- request models
# ---------------------------------------------------------------------------


class CategoryCreate(_CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProductCreate(_CamelModel):
    """Request body for POST /products."""

    model_config = ConfigDict(str_strip_whitespace=True)

    category_id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=2000)


class ProductPatch(_CamelModel):
    """Request body for PATCH /products/{id}. Only the fields sent are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    category_id: Optional[int] = Field(default=None, ge=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)


# ---------------------------------------------------------------------------
# Catalog -- response models
# ---------------------------------------------------------------------------


class CategoryOut(_CamelOut):
    id: int
    name: str
    description: Optional[str] = None
    created_at: str

    @classmethod
    def from_domain(cls, category: Category) -> "CategoryOut":
        return cls(
            id=category.id,
            name=category.name,
            description=category.description,
            created_at=category.created_at,
        )


class ProductOut(_CamelOut):
    id: int
    category_id: int
    name: str
    description: str
    is_deleted: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, product: Product) -> "ProductOut":
        return cls(
            id=product.id,
            category_id=product.category_id,
            name=product.name,
            description=product.description,
            is_deleted=product.is_deleted,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )
