"""
JWT token handling for authentication.

This module provides functionality for:
- Holding the signing configuration (secret, issuer, lifetime)
- Issuing signed tokens that carry a customer's identity claims
- Validating tokens and classifying why a token was rejected

Tokens are HS256-signed and self-contained. There is no refresh or
revocation mechanism: a token stays valid until its expiry.
"""
import os
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from customer_service.auth.models import Role

# JWT Configuration
ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32
DEFAULT_SECRET_KEY = "your-secret-key-change-in-production-minimum-32-characters-long"
DEFAULT_ISSUER = "api-gateway"
DEFAULT_EXPIRATION_MS = 3600000


class TokenValidationError(Exception):
    """Base class for every reason a token is rejected."""


class MalformedToken(TokenValidationError):
    """The token cannot be parsed or lacks required claims."""


class TokenExpired(TokenValidationError):
    """The token's expiry is in the past."""


class InvalidSignature(TokenValidationError):
    """The token was not signed with the configured secret."""


class IssuerMismatch(TokenValidationError):
    """The token was issued by someone other than the expected issuer."""


class JWTSettings(BaseModel):
    """Signing configuration shared by every issuing and validating node."""
    secret_key: str
    issuer: str = DEFAULT_ISSUER
    expiration: timedelta = timedelta(milliseconds=DEFAULT_EXPIRATION_MS)

    @field_validator("secret_key")
    @classmethod
    def secret_must_be_long_enough(cls, v):
        if len(v.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ValueError(f"JWT secret must be at least {MIN_SECRET_BYTES} bytes")
        return v

    @field_validator("expiration")
    @classmethod
    def expiration_in_whole_seconds(cls, v):
        # iat/exp are whole seconds on the wire
        if v < timedelta(seconds=1):
            raise ValueError("JWT expiration must be at least one second")
        return timedelta(seconds=int(v.total_seconds()))

    @classmethod
    def from_env(cls) -> "JWTSettings":
        """Build settings from JWT_SECRET_KEY, JWT_ISSUER and JWT_EXPIRATION_MS."""
        return cls(
            secret_key=os.getenv("JWT_SECRET_KEY", DEFAULT_SECRET_KEY),
            issuer=os.getenv("JWT_ISSUER", DEFAULT_ISSUER),
            expiration=timedelta(
                milliseconds=int(os.getenv("JWT_EXPIRATION_MS", DEFAULT_EXPIRATION_MS))
            ),
        )


class TokenClaims(BaseModel):
    """Identity facts carried by a token. Timestamps are UTC, whole seconds."""
    model_config = ConfigDict(frozen=True)

    subject_id: str = Field(..., min_length=1, validation_alias=AliasChoices("sub", "userId", "subject_id"))
    email: str
    role: Role
    issuer: str = Field(..., validation_alias=AliasChoices("iss", "issuer"))
    issued_at: datetime = Field(..., validation_alias=AliasChoices("iat", "issued_at"))
    expires_at: datetime = Field(..., validation_alias=AliasChoices("exp", "expires_at"))

    @field_validator("role", mode="before")
    @classmethod
    def role_is_case_insensitive(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def to_payload(self) -> Dict[str, Any]:
        return {
            "sub": self.subject_id,
            "userId": self.subject_id,
            "email": self.email,
            "role": self.role.value,
            "iss": self.issuer,
            "iat": int(self.issued_at.timestamp()),
            "exp": int(self.expires_at.timestamp()),
        }


class TokenCodec:
    """
    Issues and validates tokens for one `JWTSettings`.
    """
    def __init__(self, settings: JWTSettings):
        self.settings = settings

    def issue(self, subject_id: str, email: str, role: Role) -> str:
        """
        Create a token for a customer, valid from now for the configured lifetime.

        Args:
            subject_id: Customer ID
            email: Customer email
            role: Customer role

        Returns:
            Encoded JWT token string
        """
        now = datetime.now(timezone.utc).replace(microsecond=0)
        claims = TokenClaims(
            subject_id=str(subject_id),
            email=email,
            role=Role(role),
            issuer=self.settings.issuer,
            issued_at=now,
            expires_at=now + self.settings.expiration,
        )
        return self.encode(claims)

    def encode(self, claims: TokenClaims) -> str:
        """Sign an explicit claims bundle."""
        return jwt.encode(claims.to_payload(), self.settings.secret_key, algorithm=ALGORITHM)

    def validate(self, token: str) -> TokenClaims:
        """
        Verify a token and return its claims.

        Expiry is checked before the signature, so an expired token is
        reported as expired whoever signed it.

        Raises:
            MalformedToken, TokenExpired, InvalidSignature, IssuerMismatch
        """
        try:
            unverified = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise MalformedToken(str(e)) from e

        exp = unverified.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise MalformedToken("Token has no valid expiration")
        if time.time() > exp:
            raise TokenExpired("Token has expired")

        try:
            payload = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[ALGORITHM],
                issuer=self.settings.issuer,
                options={"require": ["sub", "iss", "iat", "exp"]},
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignature(str(e)) from e
        except jwt.ExpiredSignatureError as e:
            raise TokenExpired(str(e)) from e
        except jwt.InvalidIssuerError as e:
            raise IssuerMismatch(str(e)) from e
        except jwt.PyJWTError as e:
            raise MalformedToken(str(e)) from e

        return self._claims_from_payload(payload)

    @staticmethod
    def _claims_from_payload(payload: Dict[str, Any]) -> TokenClaims:
        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise MalformedToken(f"Token claims are missing or invalid: {fields}") from e


@lru_cache()
def get_token_codec() -> TokenCodec:
    """Codec built from the environment, shared by the app."""
    return TokenCodec(JWTSettings.from_env())


def create_access_token(subject_id: str, email: str, role: Role, codec: Optional[TokenCodec] = None) -> str:
    """Issue a token with the shared codec unless one is given."""
    return (codec or get_token_codec()).issue(subject_id, email, role)
