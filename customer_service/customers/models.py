"""
Storage models for customers.

This module defines SQLAlchemy models for:
- Customer documents (one JSON document per customer)
- Durable named counters used for ID allocation

and the bcrypt helpers used to hash and check passwords.
"""
import os
import bcrypt
from sqlalchemy import BigInteger, Column, JSON, String

from customer_service.base_microservice import Base
from customer_service.exceptions import BadRequestException

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))
BCRYPT_MAX_PASSWORD_BYTES = 72


class CustomerDocument(Base):
    """A customer record, stored whole as a JSON document."""
    __tablename__ = "customers"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    document = Column(JSON, nullable=False)


class Counter(Base):
    """A named, monotonically increasing counter."""
    __tablename__ = "counters"

    name = Column(String, primary_key=True)
    value = Column(BigInteger, nullable=False)


def get_password_hash(password: str) -> str:
    """Generate password hash using bcrypt."""
    encoded = password.encode('utf-8')
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        raise BadRequestException(
            f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes"
        )
    return bcrypt.hashpw(
        encoded,
        bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    ).decode('utf-8')


def verify_password(password: str, hashed_password: str) -> bool:
    """Check if provided password matches the stored hash."""
    encoded = password.encode('utf-8')
    if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed_password.encode('utf-8'))
    except ValueError:
        return False
