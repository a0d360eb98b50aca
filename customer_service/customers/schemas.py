"""
Customer request, response and stored-document models.

Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic.networks import validate_email

from customer_service.auth.models import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def normalize_email(value: str) -> str:
    """Canonical form used for storage, uniqueness and lookups."""
    return value.strip().lower()


def _dedupe(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return list(dict.fromkeys(values))


class Location(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class Address(CamelModel):
    """An address embedded in a customer record."""
    id: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    is_default: bool = False
    location: Optional[Location] = None


class Customer(CamelModel):
    """A stored customer document, including the password hash."""
    id: str
    email: str
    password_hash: str
    role: Role = Role.CUSTOMER
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: List[Address] = []
    favorite_restaurants: List[str] = []
    created_at: datetime
    updated_at: datetime


class CustomerCreate(CamelModel):
    """Model for customer registration."""
    id: Optional[str] = None  # ignored, IDs are generated server-side
    email: EmailStr
    password: Optional[str] = None
    role: Optional[str] = None  # ignored, new customers are always CUSTOMER
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: Optional[List[Address]] = None
    favorite_restaurants: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def canonical_email(cls, v):
        return normalize_email(v)

    @field_validator("favorite_restaurants")
    @classmethod
    def drop_duplicate_favorites(cls, v):
        return _dedupe(v)


class CustomerUpdate(CamelModel):
    """
    Model for partial updates.

    Only fields present in the request are considered; see
    `CustomerService.update_customer` for the merge rules.
    """
    id: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: Optional[List[Address]] = None
    favorite_restaurants: Optional[List[str]] = None

    @field_validator("favorite_restaurants")
    @classmethod
    def drop_duplicate_favorites(cls, v):
        return _dedupe(v)

    @field_validator("email")
    @classmethod
    def email_must_be_valid_when_given(cls, v):
        if v is None or not v.strip():
            return v
        return normalize_email(validate_email(v.strip())[1])


class CustomerOut(CamelModel):
    """Model for customer information returned to clients."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    email: str
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: List[Address] = []
    favorite_restaurants: List[str] = []
    created_at: datetime
    updated_at: datetime


class CustomerPage(CamelModel):
    """One page of customers."""
    content: List[CustomerOut]
    page: int
    size: int
    total_elements: int
    total_pages: int


class LoginRequest(CamelModel):
    """Model for customer login."""
    email: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(CamelModel):
    """Identity summary returned on successful login."""
    id: str
    email: str
    role: Role


class RoleUpdate(CamelModel):
    """Model for the admin role update."""
    role: Optional[str] = None
